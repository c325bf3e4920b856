"""
End-to-end integration tests for the Document Image Preprocessing Pipeline.
"""

import pytest
import numpy as np
import json
import sys
import tempfile
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def png_bytes(image: np.ndarray) -> bytes:
    import cv2
    ok, encoded = cv2.imencode(".png", image)
    assert ok
    return encoded.tobytes()


class TestEndToEnd:
    """End-to-end integration tests."""

    @pytest.fixture
    def two_tone_image(self):
        """100x100 image, left half gray 200, right half gray 50."""
        from imageprep.utils.images import RawImage

        rgba = np.zeros((100, 100, 4), dtype=np.uint8)
        rgba[:, :50, :3] = 200
        rgba[:, 50:, :3] = 50
        rgba[:, :, 3] = 255
        return RawImage(width=100, height=100, rgba=rgba.tobytes())

    @pytest.fixture
    def sample_document_image(self):
        """Create a sample document photo with uneven lighting."""
        import cv2

        img = np.full((400, 300, 3), 235, dtype=np.uint8)

        # Shadow falling across the lower right
        yy, xx = np.mgrid[0:400, 0:300]
        shade = (np.clip((xx + yy - 350) / 350.0, 0, 1) * 110).astype(np.uint8)
        img = (img - shade[:, :, None]).astype(np.uint8)

        cv2.putText(img, "Invoice", (30, 60), cv2.FONT_HERSHEY_DUPLEX, 1.2, (20, 20, 20), 2)
        for i, y in enumerate(range(120, 380, 40)):
            cv2.putText(img, f"Item {i + 1}: 12.50", (30, y),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.7, (30, 30, 30), 2)
        return img

    @pytest.fixture
    def temp_output_dir(self):
        """Create a temporary output directory."""
        with tempfile.TemporaryDirectory(prefix="imageprep_test_") as tmp_dir:
            yield Path(tmp_dir)

    def test_two_tone_boundary(self, two_tone_image):
        """Bright half becomes white, dark half black, edge stays near x = 50."""
        from imageprep.utils.images import preprocess_image

        result = preprocess_image(two_tone_image)
        binary = result.image

        assert binary.shape == (100, 100)
        assert set(np.unique(binary).tolist()) <= {0, 255}
        assert (binary[:, :46] == 255).all()
        assert (binary[:, 53:] == 0).all()

        for row in binary:
            first_black = int(np.argmax(row == 0))
            assert abs(first_black - 50) <= 2

    def test_two_tone_stages(self, two_tone_image):
        from imageprep.utils.images import preprocess_image

        stages = preprocess_image(two_tone_image, keep_intermediates=True).stages

        assert (stages["grayscale"][:, :50] == 200).all()
        assert (stages["grayscale"][:, 50:] == 50).all()
        # Blur only touches the two columns at the edge
        assert stages["blur"][10, 49] == 163
        assert stages["blur"][10, 50] == 88
        assert stages["blur"][0, 49] == 200
        assert set(np.unique(stages["equalize"]).tolist()) == {0, 5, 10, 255}

    def test_noise_suppression(self):
        """Isolated bright specks are mostly removed by the final erosion."""
        from imageprep.utils.images import RawImage, preprocess_image

        rng = np.random.default_rng(2024)
        gray = np.zeros((200, 200), dtype=np.uint8)
        gray[rng.random((200, 200)) < 0.005] = 255

        result = preprocess_image(RawImage.from_array(gray), keep_intermediates=True)

        before = int((result.stages["binarize"] == 255).sum())
        after = int((result.stages["erode"] == 255).sum())
        assert before > 0
        assert after <= 0.2 * before

    def test_salt_and_pepper_on_gray_field(self):
        """
        Mid-gray field with salt and pepper noise.

        Erosion only ever turns white into black, so it removes bright
        pixels without adding any, while dark specks grow. On this input the
        white count drops well short of the isolated-speck case above.
        """
        from imageprep.utils.images import RawImage, preprocess_image

        rng = np.random.default_rng(128)
        gray = np.full((200, 200), 128, dtype=np.uint8)
        noise = rng.random((200, 200))
        gray[noise < 0.02] = 0
        gray[noise > 0.98] = 255

        stages = preprocess_image(RawImage.from_array(gray), keep_intermediates=True).stages
        binary, eroded = stages["binarize"], stages["erode"]

        assert set(np.unique(binary).tolist()) <= {0, 255}
        assert (eroded <= binary).all()

        white_before = int((binary == 255).sum())
        white_after = int((eroded == 255).sum())
        black_before = int((binary == 0).sum())
        black_after = int((eroded == 0).sum())

        assert 0 < white_after < white_before
        assert black_after > black_before
        assert white_after > 0.2 * white_before

    def test_document_photo(self, sample_document_image):
        """Text stays black in both lit and shaded areas, background turns white."""
        from imageprep.utils.batch import process_image
        from imageprep.utils.images import get_image_stats

        result = process_image(png_bytes(sample_document_image))
        stats = get_image_stats(result.image)

        assert stats.is_binary
        assert 0.01 < stats.foreground_ratio < 0.4
        # Blank margins, one lit and one shaded
        assert (result.image[5:15, 200:290] == 255).all()
        assert (result.image[385:395, 200:290] == 255).all()

    def test_batch_json_output(self, sample_document_image, temp_output_dir):
        """Batch summaries serialize to JSON."""
        from imageprep.utils.batch import BatchProcessor
        from imageprep.utils.io import save_json, load_json

        result = BatchProcessor().process([
            ("page.png", png_bytes(sample_document_image)),
            ("broken.png", b"\x89PNG not really"),
        ])

        json_path = save_json(result.to_dict(), temp_output_dir / "batch.json")
        loaded = load_json(json_path)

        assert loaded["total"] == 2
        assert loaded["items"][0]["status"] == "success"
        assert loaded["items"][0]["result"]["width"] == 300
        assert loaded["items"][1]["status"] == "error"


class TestCommandLine:
    """Test the command-line entry point."""

    @pytest.fixture
    def input_folder(self, tmp_path):
        folder = tmp_path / "scans"
        folder.mkdir()
        page = np.full((60, 80), 220, dtype=np.uint8)
        page[25:30, 10:70] = 30
        (folder / "page1.png").write_bytes(png_bytes(page))
        (folder / "page2.jpg").write_bytes(png_bytes(255 - page))
        (folder / "notes.txt").write_text("ignored")
        return folder

    @pytest.fixture
    def clean_env(self, monkeypatch):
        for name in ("IMAGEPREP_BLOCK_SIZE", "IMAGEPREP_K", "IMAGEPREP_R", "IMAGEPREP_METHOD",
                     "IMAGEPREP_WORKERS", "IMAGEPREP_DEBUG", "IMAGEPREP_OCR", "IMAGEPREP_OCR_LANG"):
            monkeypatch.delenv(name, raising=False)

    def parse(self, *argv):
        from imageprep.cli import setup_argparser
        return setup_argparser().parse_args(list(argv))

    def test_folder_run(self, input_folder, tmp_path, clean_env):
        from imageprep.cli import run_pipeline

        out = tmp_path / "out"
        args = self.parse("--input", str(input_folder), "--output", str(out),
                          "--save-stages", "--comparison", "--workers", "2", "--quiet")

        assert run_pipeline(args) == 0

        assert (out / "page1_binary.png").exists()
        assert (out / "page2_binary.png").exists()
        assert (out / "page1_comparison.png").exists()
        stage_files = sorted(p.name for p in (out / "stages").iterdir())
        assert "page1_equalize.png" in stage_files
        assert "page1_erode.png" not in stage_files

        summary = json.loads((out / "summary.json").read_text())
        assert summary["success_count"] == 2
        assert summary["config"]["block_size"] == 25
        assert set(summary["outputs"]) == {"page1.png", "page2.jpg"}

    def test_failed_image_sets_exit_code(self, tmp_path, clean_env):
        from imageprep.cli import run_pipeline

        folder = tmp_path / "in"
        folder.mkdir()
        (folder / "good.png").write_bytes(png_bytes(np.full((20, 20), 128, dtype=np.uint8)))
        (folder / "bad.png").write_bytes(b"corrupt")
        out = tmp_path / "out"

        code = run_pipeline(self.parse("-i", str(folder), "-o", str(out), "-q", "--format", "bmp"))

        assert code == 1
        assert (out / "good_binary.bmp").exists()
        summary = json.loads((out / "summary.json").read_text())
        assert summary["error_count"] == 1
        assert [item["status"] for item in summary["items"]] == ["error", "success"]

    def test_invalid_block_size(self, input_folder, tmp_path, clean_env):
        from imageprep.cli import run_pipeline

        args = self.parse("-i", str(input_folder), "-o", str(tmp_path / "out"),
                          "--block-size", "10", "-q")

        assert run_pipeline(args) == 2

    def test_no_images(self, tmp_path, clean_env):
        from imageprep.cli import run_pipeline

        empty = tmp_path / "empty"
        empty.mkdir()

        assert run_pipeline(self.parse("-i", str(empty), "-o", str(tmp_path / "out"), "-q")) == 1

    def test_save_failure_logged_without_debug(self, input_folder, tmp_path, clean_env, monkeypatch):
        import imageprep.cli as cli

        def broken_save(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(cli, "save_outputs", broken_save)
        args = self.parse("-i", str(input_folder), "-o", str(tmp_path / "out"), "-q")

        assert cli.run_pipeline(args) == 0
        summary = json.loads((tmp_path / "out" / "summary.json").read_text())
        assert summary["outputs"] == {}
        assert summary["config"]["debug"] is False

    def test_save_failure_raised_in_debug_from_env(self, input_folder, tmp_path, clean_env, monkeypatch):
        import imageprep.cli as cli

        def broken_save(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(cli, "save_outputs", broken_save)
        monkeypatch.setenv("IMAGEPREP_DEBUG", "true")
        args = self.parse("-i", str(input_folder), "-o", str(tmp_path / "out"), "-q")

        with pytest.raises(OSError, match="disk full"):
            cli.run_pipeline(args)

    def test_build_config_overrides(self, clean_env):
        from imageprep.cli import build_config

        config = build_config(self.parse("-i", "x", "-o", "y", "--block-size", "15", "--k", "0.2",
                                         "--method", "naive", "--format", "tiff", "--debug"))

        assert config.binarization.block_size == 15
        assert config.binarization.k == 0.2
        assert config.binarization.r == 128.0
        assert config.method == "naive"
        assert config.output_format == ".tiff"
        assert config.keep_intermediates is True
        assert config.debug_mode is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

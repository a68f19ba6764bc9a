"""Unit tests for pipeline errors and progress events."""

from firmpipe.errors import CompileError, ConfigError, FirmpipeError, FlashError
from firmpipe.progress import BuildEvent, EventKind, no_progress


class TestFirmpipeError:
    """Tests for the error hierarchy."""

    def test_str_includes_stage_file_and_detail(self):
        error = FlashError("Upload to COM3 failed (exit code 1)", file="uno.hex", detail="avrdude: timeout\n")
        assert str(error) == "[flash] Upload to COM3 failed (exit code 1)\n  file: uno.hex\navrdude: timeout"

    def test_message_only(self):
        assert str(ConfigError("Missing required build context field: app_dir")) == (
            "[config] Missing required build context field: app_dir"
        )

    def test_compile_error_failures(self):
        error = CompileError("2 of 4 files failed to compile", file="a.c", failures=[("a.c", "x"), ("b.c", "y")])
        assert isinstance(error, FirmpipeError)
        assert error.failures == [("a.c", "x"), ("b.c", "y")]
        assert CompileError("x").failures == []


class TestBuildEvent:
    """Tests for BuildEvent."""

    def test_constructors(self):
        assert BuildEvent.info("linking...").kind is EventKind.INFO
        assert BuildEvent.warning("w", "a.c").kind is EventKind.WARNING
        assert BuildEvent.error("e", "a.c").kind is EventKind.ERROR

    def test_str(self):
        assert str(BuildEvent.info("compiling... a.c ok.", "a.c")) == "compiling... a.c ok."
        assert str(BuildEvent.error("a.c:1: error: y", "a.c")) == "error: a.c: a.c:1: error: y"

    def test_no_progress(self):
        assert no_progress(BuildEvent.info("ignored")) is None

"""Tests for the firmpipe CLI commands."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from firmpipe.build.binary_generator import ImageOutput
from firmpipe.build.compilation_executor import CompileOutput
from firmpipe.build.linker import LinkOutput
from firmpipe.build.orchestrator import BuildResult
from firmpipe.build.process_runner import StdioMode
from firmpipe.cli import main
from firmpipe.deploy import FlashResult
from firmpipe.errors import CompileError, FlashError


class TestCLIBuild:
    """Tests for the 'firmpipe build' command."""

    @pytest.fixture
    def mock_pipeline(self):
        """Patch BuildPipeline in the CLI module."""
        with patch("firmpipe.cli.BuildPipeline") as mock_class:
            instance = MagicMock()
            instance.build = AsyncMock()
            mock_class.return_value = instance
            yield mock_class, instance

    @pytest.fixture
    def success_result(self, app_dir):
        return BuildResult(
            compiled=CompileOutput(objects=[app_dir / "main.o"], warnings=[]),
            linked=LinkOutput(elf_path=app_dir / "uno.elf", objects=[app_dir / "main.o"]),
            image=ImageOutput(hex_path=app_dir / "uno.hex"),
            build_time=1.25,
        )

    def base_args(self, platform_dir, app_dir):
        return ["-P", str(platform_dir), "-b", "uno", "-o", str(app_dir)]

    def test_build_success(self, mock_pipeline, success_result, platform_dir, app_dir, capsys):
        mock_class, instance = mock_pipeline
        instance.build.return_value = success_result

        with pytest.raises(SystemExit) as exc_info:
            main(["build", "sketch.cpp", *self.base_args(platform_dir, app_dir)])

        assert exc_info.value.code == 0
        captured = capsys.readouterr()
        assert "Build successful" in captured.out
        assert "uno.hex" in captured.out
        assert "1.25s" in captured.out

        config = mock_class.call_args.args[0]
        assert config.board_name == "uno"
        assert mock_class.call_args.kwargs == {"concurrency": 8, "link_discovery": "scan"}
        assert [str(s) for s in instance.build.call_args.args[0]] == ["sketch.cpp"]

    def test_build_options(self, mock_pipeline, success_result, platform_dir, app_dir, tmp_path):
        mock_class, instance = mock_pipeline
        instance.build.return_value = success_result

        with pytest.raises(SystemExit) as exc_info:
            main([
                "build", "a.cpp", "b.c",
                *self.base_args(platform_dir, app_dir),
                "-I", str(tmp_path / "libs"),
                "--flag=-DDEBUG",
                "--ldflag=-Wl,-Map=out.map",
                "--archive", "b.c",
                "-j", "3",
                "--link-discovery", "list",
            ])

        assert exc_info.value.code == 0
        assert mock_class.call_args.kwargs == {"concurrency": 3, "link_discovery": "list"}
        kwargs = instance.build.call_args.kwargs
        assert kwargs["board_flags"] == ["-DDEBUG"]
        assert kwargs["ldflags"] == ["-Wl,-Map=out.map"]
        assert [p.name for p in kwargs["include_dirs"]] == ["libs"]
        assert [str(p) for p in kwargs["archive_sources"]] == ["b.c"]

    def test_board_context_file(self, mock_pipeline, success_result, platform_dir, app_dir, tmp_path):
        mock_class, instance = mock_pipeline
        instance.build.return_value = success_result
        board_file = tmp_path / "uno.json"
        board_file.write_text(json.dumps({"arch": "AVR_UNO", "mcu": "atmega328p", "baudrate": 115200}))

        with pytest.raises(SystemExit):
            main(["build", "a.cpp", *self.base_args(platform_dir, app_dir), "--board-context", str(board_file)])

        config = mock_class.call_args.args[0]
        assert config.board_context.arch == "AVR_UNO"
        assert config.board_context.baud_rate == 115200

    def test_compile_failure(self, mock_pipeline, platform_dir, app_dir, capsys):
        _mock_class, instance = mock_pipeline
        instance.build.side_effect = CompileError(
            "2 of 5 files failed to compile",
            file="a.cpp",
            detail="a.cpp:1:1: error: boom",
            failures=[("a.cpp", "boom"), ("b.c", "bang")],
        )

        with pytest.raises(SystemExit) as exc_info:
            main(["build", "a.cpp", "b.c", *self.base_args(platform_dir, app_dir)])

        assert exc_info.value.code == 1
        out = capsys.readouterr().out
        assert "Build failed" in out
        assert "[compile] 2 of 5 files failed to compile" in out
        assert "a.cpp:1:1: error: boom" in out
        assert "b.c" in out

    def test_invalid_jobs(self, platform_dir, app_dir):
        with pytest.raises(SystemExit) as exc_info:
            main(["build", "a.cpp", *self.base_args(platform_dir, app_dir), "-j", "0"])
        assert exc_info.value.code == 2

    def test_missing_platform(self, tmp_path, app_dir, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["build", "a.cpp", "-P", str(tmp_path / "nope"), "-b", "uno", "-o", str(app_dir)])
        assert exc_info.value.code == 2
        assert "does not exist" in capsys.readouterr().out

    def test_keyboard_interrupt(self, mock_pipeline, platform_dir, app_dir):
        _mock_class, instance = mock_pipeline
        instance.build.side_effect = KeyboardInterrupt()

        with pytest.raises(SystemExit) as exc_info:
            main(["build", "a.cpp", *self.base_args(platform_dir, app_dir)])
        assert exc_info.value.code == 130

    def test_no_command_shows_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 0
        assert "firmpipe" in capsys.readouterr().out


class TestCLIFlash:
    """Tests for the 'firmpipe flash' command."""

    @pytest.fixture
    def mock_pipeline(self, app_dir):
        with patch("firmpipe.cli.BuildPipeline") as mock_class:
            instance = MagicMock()
            instance.image_from_disk.return_value = ImageOutput(hex_path=app_dir / "uno.hex")
            instance.flash = AsyncMock()
            mock_class.return_value = instance
            yield instance

    def test_flash_success(self, mock_pipeline, platform_dir, app_dir, capsys):
        mock_pipeline.flash.return_value = FlashResult(
            success=True, message="ok", port="/dev/ttyACM0", baud_rate=115200, image=app_dir / "uno.hex"
        )

        with pytest.raises(SystemExit) as exc_info:
            main(["flash", "-P", str(platform_dir), "-b", "uno", "-o", str(app_dir), "-p", "/dev/ttyACM0"])

        assert exc_info.value.code == 0
        assert "Flash successful" in capsys.readouterr().out
        image, port, baud, stdio_mode = mock_pipeline.flash.call_args.args
        assert port == "/dev/ttyACM0"
        assert baud is None
        assert stdio_mode is StdioMode.INHERITED

    def test_flash_capture_and_baud(self, mock_pipeline, platform_dir, app_dir):
        mock_pipeline.flash.return_value = FlashResult(
            success=True, message="ok", port="COM3", baud_rate=57600, image=app_dir / "uno.hex"
        )

        with pytest.raises(SystemExit):
            main([
                "flash", "-P", str(platform_dir), "-b", "uno", "-o", str(app_dir),
                "-p", "COM3", "--baud", "57600", "--capture",
            ])

        _image, _port, baud, stdio_mode = mock_pipeline.flash.call_args.args
        assert baud == 57600
        assert stdio_mode is StdioMode.CAPTURED

    def test_flash_failure(self, mock_pipeline, platform_dir, app_dir, capsys):
        mock_pipeline.flash.side_effect = FlashError(
            "Upload to COM3 failed (exit code 1)", detail="avrdude: ser_open(): can't open device"
        )

        with pytest.raises(SystemExit) as exc_info:
            main(["flash", "-P", str(platform_dir), "-b", "uno", "-o", str(app_dir), "-p", "COM3"])

        assert exc_info.value.code == 1
        out = capsys.readouterr().out
        assert "Flash failed" in out
        assert "can't open device" in out


class TestCLIWithToolchain:
    """CLI runs against the fake toolchain."""

    def test_build_then_flash(self, platform_dir, app_dir, fake_tools, tmp_path, capsys, monkeypatch):
        sketch = tmp_path / "blink.cpp"
        sketch.write_text("void setup() {}\n")
        base = ["-P", str(platform_dir), "-b", "uno", "-o", str(app_dir)]

        with pytest.raises(SystemExit) as exc_info:
            main(["build", str(sketch), *base])
        assert exc_info.value.code == 0
        assert (app_dir / "uno.hex").is_file()
        assert "compiling... blink.cpp ok." in capsys.readouterr().out

        with pytest.raises(SystemExit) as exc_info:
            main(["flash", *base, "-p", "/dev/ttyUSB0", "--capture"])
        assert exc_info.value.code == 0
        assert fake_tools()[-1]["tool"] == "avrdude"

        monkeypatch.setenv("FAKE_AVRDUDE_EXIT", "1")
        with pytest.raises(SystemExit) as exc_info:
            main(["flash", *base, "-p", "/dev/ttyUSB0", "--capture"])
        assert exc_info.value.code == 1

    def test_flash_without_build(self, platform_dir, app_dir, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["flash", "-P", str(platform_dir), "-b", "uno", "-o", str(app_dir), "-p", "COM3"])
        assert exc_info.value.code == 1
        assert "build first" in capsys.readouterr().out

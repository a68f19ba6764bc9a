"""
Pytest configuration and shared fixtures for the firmpipe test suite.

The fake platform fixture builds a complete platform directory in tmp_path
whose toolchain binaries are small Python scripts. They behave like the
real tools closely enough for the pipeline: the compiler writes an object
file (or fails when the source contains FAKE_ERROR, or warns on
FAKE_WARNING), the linker/archiver/objcopy write their outputs, and avrdude
exits with FAKE_AVRDUDE_EXIT. Every invocation is appended to a JSON-lines
log so tests can inspect the exact argv.
"""

import json
import os
import stat
import sys
from pathlib import Path

import pytest

from firmpipe.config import BoardContext, BuildContext, resolve

FAKE_TOOL = '''#!{python}
import json
import os
import sys
import time

tool = os.path.basename(sys.argv[0])
args = sys.argv[1:]

log = os.environ.get("FIRMPIPE_FAKE_LOG")
if log:
    with open(log, "a") as f:
        f.write(json.dumps({{"tool": tool, "args": args, "cwd": os.getcwd()}}) + "\\n")


def arg_after(flag):
    return args[args.index(flag) + 1]


if tool in ("avr-gcc", "avr-g++") and "-c" in args:
    source = arg_after("-c")
    output = arg_after("-o")
    with open(source) as f:
        text = f.read()
    if "FAKE_SLOW" in text:
        time.sleep(0.3)
    if "FAKE_ERROR" in text:
        sys.stderr.write(source + ":1:1: error: FAKE_ERROR\\n")
        sys.exit(1)
    if "FAKE_WARNING" in text:
        sys.stderr.write(source + ":1:1: warning: FAKE_WARNING\\n")
    with open(output, "w") as f:
        f.write("obj:" + source)
elif tool == "avr-gcc":
    output = arg_after("-o")
    objects = [a for a in args if a.endswith(".o")]
    with open(output, "w") as f:
        f.write("\\n".join(objects))
elif tool == "avr-ar":
    archive, objects = args[1], args[2:]
    missing = [o for o in objects if not os.path.exists(o)]
    if missing:
        sys.stderr.write("avr-ar: " + missing[0] + ": No such file or directory\\n")
        sys.exit(1)
    with open(archive, "w") as f:
        f.write("\\n".join(objects))
elif tool == "avr-objcopy":
    source, output = args[-2], args[-1]
    with open(source) as f:
        data = f.read()
    with open(output, "w") as f:
        f.write(":" + str(len(data)))
elif tool == "avrdude":
    code = int(os.environ.get("FAKE_AVRDUDE_EXIT", "0"))
    if code:
        sys.stderr.write("avrdude: ser_open(): can't open device\\n")
    else:
        sys.stderr.write("avrdude: 1024 bytes of flash verified\\n")
    sys.exit(code)
'''

TOOLS = ["avr-gcc", "avr-g++", "avr-ar", "avr-objcopy", "avrdude"]

FAKE_TOOLS_UNSUPPORTED = os.name == "nt" or " " in sys.executable or len(sys.executable) > 120


def pytest_addoption(parser):
    parser.addoption(
        "--full",
        action="store_true",
        default=False,
        help="Also run the integration tests (subprocess CLI runs)",
    )


def pytest_configure(config):
    # --full drops the default "not integration" marker filter
    if config.getoption("--full") and config.getoption("-m", "") == "not integration":
        config.option.markexpr = ""


def write_descriptor(platform_dir: Path, **overrides) -> Path:
    """Write a context.json into platform_dir."""
    descriptor = {
        "toolchain_dir": "tools/avr/bin",
        "cflags": ["-Os -w -I{platform}/sdk/cores/arduino"],
        "cppflags": ["-std=gnu++11 -fno-exceptions"],
        "ldflags": ["-Os -Wl,--gc-sections"],
        "ldlibflag": ["-Wl,--start-group"],
        "cpp_options": [],
        "arch": "atmega328p",
        "core": "arduino",
    }
    descriptor.update(overrides)
    path = platform_dir / "context.json"
    path.write_text(json.dumps(descriptor))
    return path


@pytest.fixture
def platform_dir(tmp_path):
    """A platform directory with descriptor, entry point, core sources and fake tools."""
    platform = tmp_path / "platform"
    bin_dir = platform / "tools" / "avr" / "bin"
    bin_dir.mkdir(parents=True)
    core_dir = platform / "sdk" / "cores" / "arduino"
    core_dir.mkdir(parents=True)
    (platform / "tools" / "etc").mkdir(parents=True)
    (platform / "tools" / "etc" / "avrdude.conf").write_text("# avrdude config\n")

    write_descriptor(platform)
    (platform / "main.cpp").write_text("int main() { return 0; }\n")
    (core_dir / "wiring.c").write_text("void init(void) {}\n")
    (core_dir / "Print.cpp").write_text("void print() {}\n")
    (core_dir / "wiring_pulse.S").write_text("; not compiled\n")

    script = FAKE_TOOL.format(python=sys.executable)
    for tool in TOOLS:
        path = bin_dir / tool
        path.write_text(script)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return platform


@pytest.fixture
def app_dir(tmp_path):
    """Empty output directory."""
    out = tmp_path / "app out"
    out.mkdir()
    return out


@pytest.fixture
def tool_log(tmp_path, monkeypatch):
    """Path of the fake tool invocation log; returns a reader."""
    log = tmp_path / "tools.log"
    monkeypatch.setenv("FIRMPIPE_FAKE_LOG", str(log))

    def read():
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text().splitlines() if line]

    return read


@pytest.fixture
def events():
    """List collecting progress events."""
    return []


@pytest.fixture
def board_context():
    return BoardContext(
        arch="AVR_UNO",
        mcu="atmega328p",
        cpu_clock="16000000L",
        framework_version="10819",
    )


@pytest.fixture
def make_config(platform_dir, app_dir, events, board_context):
    """Factory resolving a BuildConfig against the fake platform."""

    def make(board=board_context, **kwargs):
        context = BuildContext(
            platform_dir=kwargs.pop("platform", platform_dir),
            board_name=kwargs.pop("board_name", "uno"),
            app_dir=kwargs.pop("app", app_dir),
            process_dir=kwargs.pop("process_dir", app_dir),
            board_context=board,
            progress=kwargs.pop("progress", events.append),
        )
        return resolve(context)

    return make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def fake_tools(platform_dir, tool_log):
    """Skip unless the fake toolchain scripts can be executed here."""
    if FAKE_TOOLS_UNSUPPORTED:
        pytest.skip("fake toolchain relies on POSIX shebang scripts")
    return tool_log

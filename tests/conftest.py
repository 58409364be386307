import sys
import textwrap

import pytest

from descend_viewer.config import Options

# Stand-in for the Lua language program, run with the current interpreter
WORD_PARSER = '''
import json
import sys

args = dict(arg[1:].split("=", 1) for arg in sys.argv[1:] if "=" in arg)

with open(args["input"], encoding="utf-8") as f:
    words = f.read().split()

print("parsing", args["input"])
print(json.dumps({
    "symbol": args.get("entry", "program"),
    "branches": {
        "1": {
            "reqs": "WORD*",
            "entries": [[{"symbol": "WORD", "value": word} for word in words]],
        },
    },
}))
'''


@pytest.fixture
def make_program(tmp_path):
    """Write a fake language program and return its path."""
    def make(body, name="main.py"):
        path = tmp_path / "program" / name
        path.parent.mkdir(exist_ok=True)
        path.write_text(textwrap.dedent(body), encoding="utf-8")
        return str(path)

    return make


@pytest.fixture
def source_root(tmp_path):
    root = tmp_path / "src"
    (root / "lib").mkdir(parents=True)
    (root / "main.dt").write_text("hello world\n", encoding="utf-8")
    (root / "lib" / "util.dt").write_text("single\n", encoding="utf-8")
    return root


@pytest.fixture
def options(make_program, source_root):
    return Options(
        lua=sys.executable,
        main=make_program(WORD_PARSER),
        root=str(source_root),
        entry="program",
    )

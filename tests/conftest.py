import os
import sys


def pytest_sessionstart(session):  # noqa: D401 - test harness helper
    """Put the running interpreter's bin directory on PATH for subprocesses.

    The CLI smoke test launches ``python -m einc``; some environments lack a
    global 'python' shim, so the directory holding the current interpreter
    (e.g. .venv/bin) is prepended.
    """

    bin_dir = os.path.dirname(sys.executable)
    path = os.environ.get("PATH", "")
    if bin_dir and bin_dir not in path.split(os.pathsep):
        os.environ["PATH"] = os.pathsep.join([bin_dir, path]) if path else bin_dir

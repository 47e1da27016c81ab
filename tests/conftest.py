from concurrent.futures import ThreadPoolExecutor

import pytest

TEAMS_HEADER = "yearID,lgID,teamID,franchID,name"
TEAMS_ROWS = [
    "1871,NA,BS1,BNA,Boston Red Stockings",
    "1871,NA,CH1,CNA,Chicago White Stockings",
    '1871,NA,CL1,CFC,"Cleveland Forest Citys, Ohio"',
]
TEAMS_FIRST_RECORD = {
    "yearID": "1871",
    "lgID": "NA",
    "teamID": "BS1",
    "franchID": "BNA",
    "name": "Boston Red Stockings",
}


@pytest.fixture
def write_csv(tmp_path):
    """Write lines joined by newline (and terminated by it) into tmp_path."""
    def _write(name, lines, newline="\r\n", encoding="utf-8"):
        path = tmp_path / name
        path.write_bytes("".join(line + newline for line in lines).encode(encoding))
        return path
    return _write


@pytest.fixture
def teams_csv(write_csv):
    """A small Teams.csv with CRLF line endings, like the usual sample data."""
    return write_csv("Teams.csv", [TEAMS_HEADER] + TEAMS_ROWS)


@pytest.fixture
def callbacks_thread():
    """Executor for callbacks; shut it down in a test to wait for every queued callback."""
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="test-callbacks")
    yield executor
    executor.shutdown(wait=True)

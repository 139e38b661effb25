"""Test doubles for borg: contract builders and a fake borg executable."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

from borgreport.core.config import RepositoryConfig
from borgreport.domain.contracts import BorgInfoContract

_FAKE_BORG = '''#!{python}
import json
import os
import sys
import time
from pathlib import Path

here = Path(__file__)
spec = json.loads(here.with_suffix(".json").read_text())
args = sys.argv[1:]
with here.with_suffix(".log").open("a", encoding="utf-8") as log:
    env = {{
        key: value
        for key, value in os.environ.items()
        if key.startswith("BORG_") or key in ("LC_ALL", "TZ", "NOTIFY_SOCKET", "AMBIENT_MARKER")
    }}
    log.write(json.dumps({{"argv": args, "env": env}}) + "\\n")

location = os.environ.get("BORG_REPO", "")
entry = spec.get(location)
if entry is None:
    sys.stderr.write(f"{{location}} is not a valid repository. Check repo config.\\n")
    sys.exit(2)

time.sleep(entry.get("delay", 0))


def finish(result):
    sys.stdout.write(result.get("stdout", ""))
    sys.stderr.write(result.get("stderr", ""))
    sys.exit(result.get("returncode", 0))


if "info" in args:
    glob = args[args.index("--glob-archives") + 1] if "--glob-archives" in args else ""
    if "info_error" in entry:
        finish({{"stderr": entry["info_error"], "returncode": 2}})
    archives = [
        archive
        for archive in entry["archives"]
        if not glob or archive["name"].startswith(glob.rstrip("*"))
    ]
    payload = {{
        "archives": archives[-1:],
        "cache": {{"stats": {{"unique_csize": entry.get("unique_csize", 0)}}}},
        "repository": {{"location": location}},
    }}
    finish({{"stdout": json.dumps(payload)}})
elif "check" in args:
    finish(entry.get("check", {{}}))
elif "compact" in args:
    finish(entry.get("compact", {{}}))
else:
    finish({{"stderr": "unsupported command", "returncode": 2}})
'''


def archive_payload(
    name: str,
    *,
    hostname: str = "host1",
    start: str = "2024-08-06T01:00:00.000000",
    duration: float = 12.5,
    original_size: int = 5_300,
    compressed_size: int = 2_100,
    deduplicated_size: int = 1_200,
    nfiles: int = 42,
) -> dict[str, Any]:
    return {
        "name": name,
        "hostname": hostname,
        "start": start,
        "end": start,
        "duration": duration,
        "id": "0" * 64,
        "stats": {
            "original_size": original_size,
            "compressed_size": compressed_size,
            "deduplicated_size": deduplicated_size,
            "nfiles": nfiles,
        },
    }


def info_contract(
    archives: list[dict[str, Any]] | None = None, unique_csize: int = 10_000
) -> BorgInfoContract:
    return BorgInfoContract.model_validate(
        {
            "archives": archives or [],
            "cache": {"stats": {"unique_csize": unique_csize, "total_size": 1}},
            "encryption": {"mode": "repokey"},
        }
    )


def repository_config(name: str = "repo1", **overrides: Any) -> RepositoryConfig:
    values: dict[str, Any] = {"env": {"BORG_REPO": f"/srv/borg/{name}"}}
    values.update(overrides)
    return RepositoryConfig(name=name, **values)


class FakeBorg:
    """A stand-in ``borg`` executable answering from a JSON description."""

    def __init__(self, directory: Path) -> None:
        self.binary = directory / "fake-borg"
        self.spec: dict[str, Any] = {}
        self.binary.write_text(_FAKE_BORG.format(python=sys.executable), encoding="utf-8")
        self.binary.chmod(0o755)
        self.save()

    def add_repository(
        self,
        location: str,
        archives: list[dict[str, Any]] | None = None,
        *,
        unique_csize: int = 10_000,
        **extra: Any,
    ) -> None:
        self.spec[location] = {
            "archives": archives or [],
            "unique_csize": unique_csize,
            **extra,
        }
        self.save()

    def save(self) -> None:
        self.binary.with_suffix(".json").write_text(json.dumps(self.spec), encoding="utf-8")

    def calls(self) -> list[dict[str, Any]]:
        log = self.binary.with_suffix(".log")
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]



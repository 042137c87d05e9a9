from __future__ import annotations

import json
import subprocess
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from depimpact import gomod
from depimpact.errors import SubstitutionError
from depimpact.gomod import GoModClient, GoModule, ReplaceDirective, Replacement, apply_substitution

PREFIX = "go.opentelemetry.io/otel"


class FakeGoMod:
    """In-memory go.mod answering the handful of `go` invocations GoModClient makes."""

    def __init__(self, *, graph: list[dict[str, Any]], replaces: list[dict[str, Any]] | None = None) -> None:
        self.graph = graph
        self.replaces: dict[str, dict[str, Any]] = {}
        for r in replaces or []:
            self.replaces[r["Old"]["Path"]] = r
        self.calls: list[list[str]] = []

    def __call__(self, args: list[str], *, cwd: Path) -> str:
        self.calls.append(list(args))
        if args == ["mod", "edit", "-json"]:
            payload = {"Module": {"Path": "example.com/dep"}, "Replace": list(self.replaces.values()) or None}
            return json.dumps(payload, indent="\t")
        if args[:2] == ["mod", "edit"]:
            for a in args[2:]:
                if a.startswith("-dropreplace="):
                    self.replaces.pop(a.split("=", 1)[1].split("@", 1)[0], None)
                elif a.startswith("-replace="):
                    old, new = a[len("-replace=") :].split("=", 1)
                    self.replaces[old] = {"Old": {"Path": old}, "New": {"Path": new}}
                else:
                    raise AssertionError(f"unexpected go mod edit flag: {a}")
            return ""
        if args == ["mod", "tidy"]:
            return ""
        if args == ["list", "-m", "-json", "all"]:
            return "\n".join(json.dumps(m, indent="\t") for m in self.graph) + "\n"
        raise AssertionError(f"unexpected go args: {args}")

    def local_targets(self) -> dict[str, str]:
        return {old: r["New"]["Path"] for old, r in self.replaces.items() if not r["New"].get("Version")}


GRAPH = [
    {"Path": "example.com/dep", "Main": True, "Dir": "/w/dep"},
    {"Path": "go.opentelemetry.io/otel", "Version": "v1.28.0"},
    {"Path": "go.opentelemetry.io/otel/sdk", "Version": "v1.28.0"},
    {"Path": "go.opentelemetry.io/otel/exporters/zipkin", "Version": "v1.28.0"},
    {"Path": "github.com/go-logr/logr", "Version": "v1.4.2"},
]


def _target_tree(root: Path) -> Path:
    for rel in ["", "sdk", "trace"]:
        d = root / rel
        d.mkdir(parents=True, exist_ok=True)
        (d / "go.mod").write_text("module x\n", encoding="utf-8")
    return root


def _client(monkeypatch: pytest.MonkeyPatch, fake: FakeGoMod) -> GoModClient:
    client = GoModClient()
    monkeypatch.setattr(client, "_go", fake)
    return client


def test_parse_module_stream_reads_concatenated_objects() -> None:
    text = json.dumps(GRAPH[0], indent="\t") + "\n" + json.dumps(GRAPH[1], indent="\t") + "\n\n"

    assert gomod.parse_module_stream(text) == [
        GoModule(path="example.com/dep", version="", main=True),
        GoModule(path="go.opentelemetry.io/otel", version="v1.28.0", main=False),
    ]
    assert gomod.parse_module_stream("  \n") == []


@pytest.mark.parametrize("text", ['{"Path": "a"} {broken', '["not", "an", "object"]'])
def test_parse_module_stream_rejects_malformed_output(text: str) -> None:
    with pytest.raises(SubstitutionError, match="go list"):
        gomod.parse_module_stream(text)


def test_replaces_parses_directives_and_null_list(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeGoMod(
        graph=GRAPH,
        replaces=[
            {"Old": {"Path": "golang.org/x/net"}, "New": {"Path": "golang.org/x/net", "Version": "v0.20.0"}},
            {"Old": {"Path": "example.com/sibling", "Version": "v1.0.0"}, "New": {"Path": "../sibling"}},
        ],
    )
    client = _client(monkeypatch, fake)

    result = client.replaces(module_dir=tmp_path)

    assert result == [
        ReplaceDirective(old_path="golang.org/x/net", new_path="golang.org/x/net", new_version="v0.20.0"),
        ReplaceDirective(old_path="example.com/sibling", new_path="../sibling", old_version="v1.0.0"),
    ]
    assert [d.is_local for d in result] == [False, True]
    assert result[1].drop_arg == "example.com/sibling@v1.0.0"
    assert _client(monkeypatch, FakeGoMod(graph=GRAPH)).replaces(module_dir=tmp_path) == []


def test_reset_drops_only_local_directives_then_tidies(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeGoMod(
        graph=GRAPH,
        replaces=[
            {"Old": {"Path": "golang.org/x/net"}, "New": {"Path": "golang.org/x/net", "Version": "v0.20.0"}},
            {"Old": {"Path": "go.opentelemetry.io/otel"}, "New": {"Path": "/stale/otel"}},
            {"Old": {"Path": "go.opentelemetry.io/otel/sdk"}, "New": {"Path": "/stale/otel/sdk"}},
        ],
    )
    client = _client(monkeypatch, fake)

    dropped = client.reset(module_dir=tmp_path)

    assert [d.old_path for d in dropped] == ["go.opentelemetry.io/otel", "go.opentelemetry.io/otel/sdk"]
    assert fake.calls == [
        ["mod", "edit", "-json"],
        [
            "mod",
            "edit",
            "-dropreplace=go.opentelemetry.io/otel",
            "-dropreplace=go.opentelemetry.io/otel/sdk",
        ],
        ["mod", "tidy"],
    ]
    assert list(fake.replaces) == ["golang.org/x/net"]


def test_reset_skips_drop_when_nothing_local(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = FakeGoMod(graph=GRAPH)
    client = _client(monkeypatch, fake)

    assert client.reset(module_dir=tmp_path) == []
    assert fake.calls == [["mod", "edit", "-json"], ["mod", "tidy"]]


def test_apply_substitution_filters_by_prefix_and_skips_missing_manifests(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = _target_tree(tmp_path / "otel")
    fake = FakeGoMod(graph=GRAPH)
    client = _client(monkeypatch, fake)

    report = apply_substitution(client, module_dir=tmp_path / "dep", source_path=source, module_prefix=PREFIX)

    resolved = source.resolve()
    assert report.matched == [
        "go.opentelemetry.io/otel",
        "go.opentelemetry.io/otel/sdk",
        "go.opentelemetry.io/otel/exporters/zipkin",
    ]
    assert report.replaced == [
        Replacement(module="go.opentelemetry.io/otel", local_path=resolved),
        Replacement(module="go.opentelemetry.io/otel/sdk", local_path=resolved / "sdk"),
    ]
    assert report.skipped == ["go.opentelemetry.io/otel/exporters/zipkin"]
    assert report.warning is None
    assert fake.local_targets() == {
        "go.opentelemetry.io/otel": str(resolved),
        "go.opentelemetry.io/otel/sdk": str(resolved / "sdk"),
    }
    # reset, list, one edit per replacement, final tidy
    assert fake.calls[-5:] == [
        ["mod", "tidy"],
        ["list", "-m", "-json", "all"],
        ["mod", "edit", f"-replace=go.opentelemetry.io/otel={resolved}"],
        ["mod", "edit", f"-replace=go.opentelemetry.io/otel/sdk={resolved / 'sdk'}"],
        ["mod", "tidy"],
    ]


def test_apply_substitution_is_idempotent(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = _target_tree(tmp_path / "otel")
    fake = FakeGoMod(graph=GRAPH)
    client = _client(monkeypatch, fake)

    first = apply_substitution(client, module_dir=tmp_path, source_path=source, module_prefix=PREFIX)
    state_once = dict(fake.replaces)
    second = apply_substitution(client, module_dir=tmp_path, source_path=source, module_prefix=PREFIX)

    assert fake.replaces == state_once
    assert first == second


def test_second_substitution_fully_supersedes_the_first(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    released = _target_tree(tmp_path / "released")
    modified = tmp_path / "modified"
    modified.mkdir()
    (modified / "go.mod").write_text("module x\n", encoding="utf-8")
    fake = FakeGoMod(graph=GRAPH)
    client = _client(monkeypatch, fake)

    apply_substitution(client, module_dir=tmp_path, source_path=released, module_prefix=PREFIX)
    assert len(fake.local_targets()) == 2

    apply_substitution(client, module_dir=tmp_path, source_path=modified, module_prefix=PREFIX)

    # modified/ only has the root module; nothing from released/ may survive.
    assert fake.local_targets() == {"go.opentelemetry.io/otel": str(modified.resolve())}


def test_apply_substitution_warns_but_succeeds_when_nothing_matches(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = _target_tree(tmp_path / "otel")
    fake = FakeGoMod(graph=[GRAPH[0], GRAPH[-1]])
    client = _client(monkeypatch, fake)

    report = apply_substitution(client, module_dir=tmp_path, source_path=source, module_prefix=PREFIX)

    assert report.matched == []
    assert report.replaced == []
    assert report.warning == f"no modules matched prefix: {PREFIX}"
    assert fake.calls[-1] == ["mod", "tidy"]


def test_apply_substitution_warns_when_matches_lack_local_manifests(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    empty_source = tmp_path / "empty"
    empty_source.mkdir()
    client = _client(monkeypatch, FakeGoMod(graph=GRAPH))

    report = apply_substitution(client, module_dir=tmp_path, source_path=empty_source, module_prefix=PREFIX)

    assert report.replaced == []
    assert len(report.skipped) == 3
    assert report.warning is not None
    assert "3 module(s) matched prefix" in report.warning


def test_apply_substitution_never_replaces_main_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = _target_tree(tmp_path / "otel")
    graph = [{"Path": "go.opentelemetry.io/otel/sdk", "Main": True}, {"Path": "go.opentelemetry.io/otel"}]
    client = _client(monkeypatch, FakeGoMod(graph=graph))

    report = apply_substitution(client, module_dir=tmp_path, source_path=source, module_prefix=PREFIX)

    assert report.matched == ["go.opentelemetry.io/otel"]


def test_apply_substitution_uses_module_root_for_subpaths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = _target_tree(tmp_path / "otel")
    fake = FakeGoMod(graph=GRAPH)
    client = _client(monkeypatch, fake)

    report = apply_substitution(
        client,
        module_dir=tmp_path,
        source_path=source,
        module_prefix="go.opentelemetry.io/otel/sdk",
        module_root=PREFIX,
    )

    assert report.replaced == [Replacement(module="go.opentelemetry.io/otel/sdk", local_path=source.resolve() / "sdk")]


@pytest.mark.parametrize(
    ("module", "expected"),
    [
        ("go.opentelemetry.io/otel", ""),
        ("go.opentelemetry.io/otel/sdk/metric", "sdk/metric"),
    ],
)
def test_local_module_dir_strips_root(tmp_path: Path, module: str, expected: str) -> None:
    assert gomod.local_module_dir(tmp_path, module, module_root=PREFIX) == (tmp_path / expected if expected else tmp_path)


def test_go_wraps_failures_with_command_and_stderr(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = GoModClient()

    def fake_run(cmd: list[str], **kwargs: Any) -> SimpleNamespace:
        raise subprocess.CalledProcessError(1, cmd, output="", stderr="go: updates to go.mod needed\n")

    monkeypatch.setattr(gomod.subprocess, "run", fake_run)

    with pytest.raises(SubstitutionError, match=r"`go mod tidy` failed .* exit code 1: go: updates to go.mod needed"):
        client.tidy(module_dir=tmp_path)


def test_go_wraps_missing_executable(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = GoModClient(executable="go1.99")

    def fake_run(cmd: list[str], **kwargs: Any) -> SimpleNamespace:
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(gomod.subprocess, "run", fake_run)

    with pytest.raises(SubstitutionError, match="cannot run go1.99"):
        client.list_modules(module_dir=tmp_path)


def test_go_runs_in_module_dir_and_captures_output(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = GoModClient()
    calls: list[tuple[list[str], dict[str, Any]]] = []

    def fake_run(cmd: list[str], **kwargs: Any) -> SimpleNamespace:
        calls.append((cmd, kwargs))
        return SimpleNamespace(returncode=0, stdout='{"Path": "example.com/dep", "Main": true}\n')

    monkeypatch.setattr(gomod.subprocess, "run", fake_run)

    assert client.list_modules(module_dir=tmp_path) == [GoModule(path="example.com/dep", main=True)]
    assert calls == [
        (
            ["go", "list", "-m", "-json", "all"],
            {"cwd": tmp_path, "text": True, "check": True, "capture_output": True},
        )
    ]


def test_dry_run_client_reports_empty_graph(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = gomod.DryRunGoModClient()
    monkeypatch.setattr(
        gomod.subprocess, "run", lambda *a, **k: (_ for _ in ()).throw(AssertionError("go should not run"))
    )

    report = apply_substitution(client, module_dir=tmp_path, source_path=tmp_path, module_prefix=PREFIX)

    assert report.matched == []
    assert report.warning is not None

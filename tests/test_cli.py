# ============================================================================
# COMMAND LINE TESTS
# ============================================================================
# STATUS: Tests - main.py subcommands
# PURPOSE: Verify run, validate, plan and test through main(argv)
# CREATED: 19 OCT 2026
# ============================================================================
"""
Command Line Tests

Run with:
    pytest tests/test_cli.py -v
"""

import json
from pathlib import Path

import pytest

import main as cli

CATALOGUE = Path(__file__).resolve().parent.parent / "workflows"


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep main() from replacing the root handlers pytest relies on."""
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)


@pytest.fixture
def workflows_dir(tmp_path):
    (tmp_path / "scores.json").write_text(json.dumps({
        "name": "scores",
        "inputs": {
            "scores": {"type": "array", "required": True},
            "threshold": {"type": "number", "default": 0.5},
        },
        "steps": [
            {"id": "keep", "tool": "filter",
             "inputs": {"items": "{{ inputs.scores }}", "condition": "item > inputs.threshold"}},
            {"id": "report", "tool": "template",
             "inputs": {"template": "kept {{ keep.output.count }} of {{ inputs.scores.length }}"}},
        ],
        "output": {"kept": "{{ keep.output.results }}", "report": "{{ report.output.text }}"},
    }))
    (tmp_path / "draft.json").write_text(json.dumps({
        "steps": [{"id": "brief", "tool": "generate", "inputs": {"prompt": "{{ search.output }}"}}],
    }))
    (tmp_path / "lookup.json").write_text(json.dumps({
        "name": "lookup",
        "steps": [{"id": "search", "tool": "search", "inputs": {"query": "rag"}}],
        "output": "{{ search.output.count }}",
    }))
    return tmp_path


def run_cli(workflows_dir, *argv):
    return cli.main(["-w", str(workflows_dir), *argv])


# ============================================================================
# RUN
# ============================================================================

class TestRun:
    """The run subcommand."""

    def test_json_result(self, workflows_dir, capsys):
        code = run_cli(workflows_dir, "run", "scores", "scores=[0.9, 0.2, 0.8]", "--json")
        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "completed"
        assert data["output"] == {"kept": [0.9, 0.8], "report": "kept 2 of 3"}
        assert data["layers"] == [["keep"], ["report"]]

    def test_output_and_progress(self, workflows_dir, capsys):
        code = run_cli(workflows_dir, "run", "scores", "scores=[1, 0]", "threshold=0.5")
        captured = capsys.readouterr()
        assert code == 0
        assert json.loads(captured.out)["kept"] == [1]
        assert "> keep (filter)" in captured.err
        assert "+ report completed" in captured.err

    def test_dry_run(self, workflows_dir, capsys):
        assert run_cli(workflows_dir, "run", "scores", "scores=[]", "--dry-run") == 0
        assert capsys.readouterr().out.splitlines() == ["Layer 0: keep", "Layer 1: report"]

    def test_missing_input(self, workflows_dir, capsys):
        assert run_cli(workflows_dir, "run", "scores") == 1
        assert "ERROR: Missing required input 'scores'" in capsys.readouterr().err

    def test_bad_assignment(self, workflows_dir, capsys):
        assert run_cli(workflows_dir, "run", "scores", "scores") == 1
        assert "Expected key=value, got 'scores'" in capsys.readouterr().err

    def test_step_failure(self, workflows_dir, capsys):
        assert run_cli(workflows_dir, "run", "lookup", "--json") == 1
        captured = capsys.readouterr()
        assert json.loads(captured.out)["status"] == "failed"
        assert "Tool not registered: search" in captured.err

    def test_tools_module(self, workflows_dir, monkeypatch, capsys):
        (workflows_dir / "cli_demo_tools.py").write_text(
            "def register(registry):\n"
            "    registry.register('search', lambda inputs, ctx: {'results': [], 'count': 7})\n"
        )
        monkeypatch.syspath_prepend(str(workflows_dir))
        assert run_cli(workflows_dir, "run", "lookup", "--tools", "cli_demo_tools") == 0
        assert capsys.readouterr().out.strip() == "7"

    def test_unknown_workflow(self, workflows_dir, capsys):
        assert run_cli(workflows_dir, "run", "nope") == 1
        assert "ERROR: Workflow not found: nope" in capsys.readouterr().err


# ============================================================================
# VALIDATE, PLAN, TEST
# ============================================================================

class TestValidate:
    """The validate subcommand."""

    def test_valid(self, workflows_dir, capsys):
        assert run_cli(workflows_dir, "validate", "scores") == 0
        assert capsys.readouterr().out.strip() == "Valid"

    def test_strict_rejects_incomplete(self, workflows_dir, capsys):
        assert run_cli(workflows_dir, "validate", "draft") == 1
        out = capsys.readouterr().out
        assert "ERROR: Workflow is missing a name" in out
        assert "Invalid: 2 error(s)" in out

    def test_draft_warns(self, workflows_dir, capsys):
        assert run_cli(workflows_dir, "validate", "draft", "--draft") == 0
        out = capsys.readouterr().out
        assert "WARNING: Step 'brief': references unknown step 'search'" in out
        assert out.strip().endswith("Valid")


class TestPlan:
    """The plan subcommand."""

    def test_layers(self, workflows_dir, capsys):
        assert run_cli(workflows_dir, "plan", "scores") == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "scores: 2 steps in 2 layers"
        assert lines[1] == "  Layer 0: keep (filter)"

    def test_json(self, workflows_dir, capsys):
        assert run_cli(workflows_dir, "plan", "scores", "--json") == 0
        data = json.loads(capsys.readouterr().out)
        assert [node["id"] for node in data["nodes"]] == ["keep", "report"]
        assert data["layerCount"] == 2


def test_test_command_on_catalogue(capsys):
    assert run_cli(CATALOGUE, "test", "search_brief") == 0
    out = capsys.readouterr().out
    assert "PASS happy path" in out
    assert "1/1 passed" in out


def test_build_registry_requires_register(workflows_dir, monkeypatch):
    (workflows_dir / "cli_no_register.py").write_text("VALUE = 1\n")
    monkeypatch.syspath_prepend(str(workflows_dir))
    with pytest.raises(ValueError):
        cli.build_registry(["cli_no_register"])


def test_parse_assignments():
    assert cli.parse_assignments(["q=a=b", " limit =3"]) == {"q": "a=b", "limit": "3"}

import io

import pytest

from conftest import MARKET_ID
from gp_config_mcp.errors import SafetyError
from gp_config_mcp.services import operations
from gp_config_mcp.services.safety_gate import is_prod_like, run_safety_gate, terminal_prompt


def _never_prompt(message):
    raise AssertionError("prompt should not be shown")


class TestProdGuard:
    @pytest.mark.parametrize("instance_id", ["gp-prod", "GP-PRODUCTION", "eu_Prod"])
    def test_prod_like_names(self, instance_id):
        assert is_prod_like(instance_id)

    @pytest.mark.parametrize("instance_id", ["gp-dev", "prod-mirror", "gp-staging"])
    def test_other_names(self, instance_id):
        assert not is_prod_like(instance_id)

    @pytest.mark.parametrize("operation", ["overwrite", "delete"])
    def test_destructive_blocked_before_db(self, make_options, monkeypatch, operation):
        def _no_engine(url):
            raise AssertionError("database must not be opened")

        monkeypatch.setattr(operations, "build_engine", _no_engine)
        options = make_options(operation, instance_id="gp-prod", force=True)
        with pytest.raises(SafetyError, match="blocked for prod"):
            operations.run_operation(options, prompt=_never_prompt)

    def test_override_env_unblocks(self, make_options, monkeypatch):
        monkeypatch.setenv("GP_ALLOW_PROD_MUTATIONS", "true")
        run_safety_gate(make_options("delete", instance_id="gp-prod", force=True), _never_prompt)

    def test_override_requires_literal_true(self, make_options, monkeypatch):
        monkeypatch.setenv("GP_ALLOW_PROD_MUTATIONS", "1")
        with pytest.raises(SafetyError):
            run_safety_gate(make_options("overwrite", instance_id="gp-prod", confirm=True), _never_prompt)

    def test_fill_and_export_not_guarded(self, make_options):
        run_safety_gate(make_options("fill", instance_id="gp-prod"), _never_prompt)
        run_safety_gate(make_options("export", instance_id="gp-prod"), _never_prompt)


class TestConfirmation:
    @pytest.mark.parametrize("operation", ["overwrite", "delete"])
    def test_confirm_or_force_required(self, make_options, operation):
        with pytest.raises(SafetyError, match="requires --confirm or --force"):
            run_safety_gate(make_options(operation), _never_prompt)

    def test_overwrite_with_confirm_needs_no_prompt(self, make_options):
        run_safety_gate(make_options("overwrite", confirm=True), _never_prompt)

    def test_delete_with_force_skips_prompt(self, make_options):
        run_safety_gate(make_options("delete", force=True), _never_prompt)

    def test_delete_prompt_accepts_market_id(self, make_options):
        seen = []

        def _prompt(message):
            seen.append(message)
            return f"  {MARKET_ID}\n"

        run_safety_gate(make_options("delete", confirm=True), _prompt)
        assert MARKET_ID in seen[0]

    def test_delete_prompt_mismatch(self, make_options):
        with pytest.raises(SafetyError, match="mismatch"):
            run_safety_gate(make_options("delete", confirm=True), lambda message: "wrong")

    def test_delete_prompt_eof(self, make_options):
        def _eof(message):
            raise EOFError

        with pytest.raises(SafetyError, match="no input"):
            run_safety_gate(make_options("delete", confirm=True), _eof)


class TestTerminalPrompt:
    def test_prompt_goes_to_stderr(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO("bonbeauty\nignored\n"))
        assert terminal_prompt("Confirm: ") == "bonbeauty\n"
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == "Confirm: "

    def test_closed_stdin_raises_eof(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO(""))
        with pytest.raises(EOFError):
            terminal_prompt("Confirm: ")

    def test_default_prompt_reads_stdin(self, make_options, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO(f"{MARKET_ID}\n"))
        run_safety_gate(make_options("delete", confirm=True))
        assert capsys.readouterr().out == ""

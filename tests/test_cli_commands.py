"""
Unit Tests for CLI Commands

Tests the CLI entry points against the seeded in-memory index with mock
embeddings. Eval functions are mocked where only the CLI orchestration
is under test.

STAFF ENGINEER PATTERNS:
------------------------
1. Mock the expensive eval functions
2. Test CLI argument parsing
3. Verify exit codes
4. Test error handling
"""

import argparse
import json
from unittest.mock import MagicMock, patch

import pytest

from edu_retrieval.cli import commands
from edu_retrieval.config import EngineConfig
from edu_retrieval.evals.retrieval_eval import (
    AlphaSearchResult,
    RetrievalEvalReport,
    RetrievalEvalResult,
    calculate_retrieval_metrics,
)
from edu_retrieval.monitoring import InMemoryEventStore


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_env():
    """Clean environment and an in-memory event store instead of logs/."""
    store = InMemoryEventStore()
    with patch.dict("os.environ", {}, clear=True), \
         patch("edu_retrieval.cli.commands.get_event_store", return_value=store):
        yield store


def _run(func, *argv):
    with patch("sys.argv", ["edu-retrieval", *argv]):
        return func()


def _report(passed):
    metrics = calculate_retrieval_metrics(["a"], ["a"] if passed else ["b"])
    return RetrievalEvalReport(
        total_cases=1,
        passed_cases=int(passed),
        failed_cases=int(not passed),
        avg_recall=metrics.recall,
        avg_precision=metrics.precision,
        avg_f1=metrics.f1_score,
        threshold=0.8,
        alpha=0.6,
        results=[RetrievalEvalResult(case_id="science-001", passed=passed, metrics=metrics)],
    )


# ---------------------------------------------------------------------------
# MAIN CLI DISPATCH TESTS
# ---------------------------------------------------------------------------


class TestMainCliDispatch:
    """Test main CLI dispatches to correct handlers."""

    @pytest.mark.parametrize(
        "command,handler",
        [
            ("ingest", "run_ingest_cli"),
            ("search", "run_search_cli"),
            ("diversity", "run_diversity_cli"),
            ("categories", "run_categories_cli"),
            ("eval", "run_eval_cli"),
            ("optimize-alpha", "run_optimize_alpha_cli"),
            ("metrics", "run_metrics_cli"),
            ("sample", "run_sample_cli"),
        ],
    )
    def test_main_dispatches(self, command, handler):
        with patch.object(commands, handler, return_value=0) as mock_handler, \
             patch.object(commands, "init_tracing"), \
             patch.object(commands, "shutdown_tracing") as mock_shutdown, \
             patch("sys.argv", ["edu-retrieval", command]):
            result = commands.main()

        mock_handler.assert_called_once()
        mock_shutdown.assert_called_once()
        assert result == 0

    def test_main_passes_remaining_args(self):
        seen = {}

        def fake_search():
            import sys
            seen["argv"] = list(sys.argv)
            return 0

        with patch.object(commands, "run_search_cli", side_effect=fake_search), \
             patch.object(commands, "init_tracing"), \
             patch.object(commands, "shutdown_tracing"), \
             patch("sys.argv", ["edu-retrieval", "search", "중력", "-k", "3"]):
            commands.main()

        assert seen["argv"] == ["edu-retrieval", "중력", "-k", "3"]

    def test_main_handles_keyboard_interrupt(self):
        with patch.object(commands, "run_search_cli", side_effect=KeyboardInterrupt()), \
             patch.object(commands, "init_tracing"), \
             patch.object(commands, "shutdown_tracing"), \
             patch("sys.argv", ["edu-retrieval", "search"]):
            assert commands.main() == 130

    def test_main_rejects_unknown_command(self):
        with patch("sys.argv", ["edu-retrieval", "bogus"]):
            with pytest.raises(SystemExit):
                commands.main()


# ---------------------------------------------------------------------------
# SEARCH COMMANDS
# ---------------------------------------------------------------------------


class TestSearchCommands:
    """Search commands against the seeded in-memory index."""

    def test_search(self, cli_env, capsys):
        result = _run(
            commands.run_search_cli, "중력", "--mock-embeddings", "--filter", '{"subject": "과학"}'
        )

        assert result == 0
        assert "sci6_gravity" in capsys.readouterr().out
        assert cli_env.events[0].strategy == "hybrid"

    def test_search_json_with_keywords(self, cli_env, capsys):
        result = _run(
            commands.run_search_cli,
            "중력 무게",
            "--mock-embeddings",
            "--json",
            "--keywords",
            "중력,무게",
            "--mode",
            "and",
        )

        documents = json.loads(capsys.readouterr().out)
        assert result == 0
        assert documents
        assert all("중력" in doc["metadata"]["keywords"] for doc in documents)
        assert cli_env.events[0].strategy == "hybrid_keyword_and"

    def test_search_bad_filter(self, cli_env):
        with pytest.raises(SystemExit):
            _run(commands.run_search_cli, "중력", "--mock-embeddings", "--filter", "{grade: 6")

    def test_diversity(self, cli_env, capsys):
        result = _run(
            commands.run_diversity_cli,
            "힘과 운동",
            "--mock-embeddings",
            "-k",
            "3",
            "--lambda",
            "0.5",
            "--exclude",
            "sci6_gravity_01",
        )

        out = capsys.readouterr().out
        assert result == 0
        assert "sci6_gravity_01" not in out

    def test_categories(self, cli_env, capsys):
        result = _run(
            commands.run_categories_cli,
            "--mock-embeddings",
            "--json",
            "--category",
            "gravity:2:중력",
            "--category",
            "friction:1:마찰력",
            "-k",
            "3",
        )

        documents = json.loads(capsys.readouterr().out)
        ids = [doc["id"] for doc in documents]
        assert result == 0
        assert len(ids) == len(set(ids))
        assert len(ids) <= 3

    def test_categories_rejects_malformed_category(self, cli_env):
        with pytest.raises(SystemExit):
            _run(commands.run_categories_cli, "--mock-embeddings", "--category", "gravity-only")


# ---------------------------------------------------------------------------
# EVAL AND TUNING
# ---------------------------------------------------------------------------


class TestEvalCommands:
    """Test eval gate and alpha tuning commands."""

    def test_eval_gate_passes(self, cli_env, capsys):
        with patch("edu_retrieval.evals.run_retrieval_eval", return_value=_report(True)):
            result = _run(commands.run_eval_cli, "--mock-embeddings")

        assert result == 0
        assert "GATE: PASSED" in capsys.readouterr().out

    def test_eval_gate_fails(self, cli_env, capsys):
        with patch("edu_retrieval.evals.run_retrieval_eval", return_value=_report(False)):
            result = _run(commands.run_eval_cli, "--mock-embeddings")

        assert result == 1
        assert "GATE: FAILED" in capsys.readouterr().out

    def test_optimize_alpha_json(self, cli_env, capsys):
        search = AlphaSearchResult(best_alpha=0.4, best_f1=0.9, scores={0.4: 0.9, 0.6: 0.7})

        with patch("edu_retrieval.evals.optimize_alpha", return_value=search) as mock_optimize:
            result = _run(commands.run_optimize_alpha_cli, "--mock-embeddings", "--json", "--grid", "0.4,0.6")

        output = json.loads(capsys.readouterr().out)
        assert result == 0
        assert output["best_alpha"] == 0.4
        assert mock_optimize.call_args.kwargs["alpha_grid"] == [0.4, 0.6]


# ---------------------------------------------------------------------------
# INGEST, METRICS, SAMPLE
# ---------------------------------------------------------------------------


class TestUtilityCommands:
    """Test ingest, metrics and sample commands."""

    def test_ingest_from_file(self, cli_env, tmp_path, capsys):
        path = tmp_path / "docs.json"
        path.write_text(
            json.dumps(
                [
                    {"id": "d1", "text": "중력 실험", "metadata": {"grade": 6, "keywords": ["중력"]}},
                    {"id": "d2", "text": "렌즈 실험", "metadata": {"grade": 6}},
                ],
                ensure_ascii=False,
            ),
            encoding="utf-8",
        )

        result = _run(commands.run_ingest_cli, "--mock-embeddings", str(path))

        assert result == 0
        assert "Ingested 2 documents" in capsys.readouterr().out

    def test_metrics(self, tmp_path, capsys):
        result = _run(commands.run_metrics_cli, "--file", str(tmp_path / "events.json"), "--hours", "1")

        summary = json.loads(capsys.readouterr().out)
        assert result == 0
        assert summary["total_requests"] == 0

    def test_sample(self, cli_env, capsys):
        result = _run(commands.run_sample_cli, "--mock-embeddings", "-n", "2")

        lines = capsys.readouterr().out.strip().splitlines()
        assert result == 0
        assert len(lines) == 2
        assert "keyword_primary" in json.loads(lines[0])


# ---------------------------------------------------------------------------
# ENGINE WIRING
# ---------------------------------------------------------------------------


class TestBuildEngine:
    """Test _build_engine() passes engine settings to the index."""

    def test_index_timeout_reaches_postgres_index(self):
        args = argparse.Namespace(use_postgres=True, mock_embeddings=True, collection="grade6_science")
        config = EngineConfig(index_timeout_s=1.5)

        with patch.dict("os.environ", {"DATABASE_URL": "postgresql://db/test"}, clear=True), \
             patch.object(commands.EngineConfig, "from_env", return_value=config), \
             patch.object(commands, "get_vector_index", return_value=MagicMock()) as mock_factory, \
             patch.object(commands, "get_event_store", return_value=InMemoryEventStore()):
            engine = commands._build_engine(args)

        index_config = mock_factory.call_args.kwargs["config"]
        assert mock_factory.call_args.kwargs["use_postgres"] is True
        assert index_config.timeout_s == 1.5
        assert index_config.connection_string == "postgresql://db/test"
        assert engine.config.index_timeout_s == 1.5
        engine.index.create_schema.assert_called_once()

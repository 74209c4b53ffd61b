"""Tests for the command-line entry point."""

import json
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from main import main, parse_args
from podmatch.core.db import CREATOR_FEATURES, SHOW_FEATURES, init_db, save_features
from podmatch.core.schemas import CandidateFeatures


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump({"database": {"path": str(tmp_path / "cli.db")}}))
    return path


class TestParseArgs:
    def test_rank(self) -> None:
        args = parse_args(["rank", "--preferences", "prefs.yaml", "--max-results", "5"])
        assert args.command == "rank"
        assert args.max_results == 5
        assert args.config == "config/settings.yaml"

    def test_batch_repeatable_topics(self) -> None:
        args = parse_args(["batch", "--creator", "c1", "--topic", "tech", "--topic", "ai", "-v"])
        assert args.topic == ["tech", "ai"]
        assert args.deadline is None
        assert args.verbose is True

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([])


class TestMain:
    def test_import_then_missing_status(self, tmp_path: Path, config_file: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        shows = tmp_path / "shows.yaml"
        shows.write_text(yaml.safe_dump([{"id": "s1", "title": "Founders Talk"}]))

        main(["import", "--shows", str(shows), "--config", str(config_file)])
        assert "Imported 1 shows" in capsys.readouterr().out

        with pytest.raises(SystemExit) as exc_info:
            main(["status", "--creator", "c1", "--config", str(config_file)])
        assert exc_info.value.code == 1
        assert "No batch has run" in capsys.readouterr().err

    def test_import_requires_a_file(self, config_file: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        with pytest.raises(SystemExit):
            main(["import", "--config", str(config_file)])
        assert "Nothing to import" in capsys.readouterr().err

    def test_batch_reports_status(self, tmp_path: Path, config_file: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        features = {
            "creator_id": "c1",
            "topics": ["ai"],
            "expertise_level": "expert",
            "communication_style": "casual",
        }
        creators = tmp_path / "creators.json"
        creators.write_text(json.dumps([{"id": "c1", "name": "Ada"}]))
        main(["import", "--creators", str(creators), "--config", str(config_file)])

        conn = init_db(tmp_path / "cli.db")
        save_features(conn, "c1", CREATOR_FEATURES, json.dumps(features), datetime.now())
        conn.close()
        capsys.readouterr()

        main(["batch", "--creator", "c1", "--config", str(config_file)])
        result = json.loads(capsys.readouterr().out)
        assert result["requester_id"] == "c1"
        assert result["total_candidates"] == 0

        main(["status", "--creator", "c1", "--config", str(config_file)])
        status = json.loads(capsys.readouterr().out)
        assert status["status"] == "completed"

    def test_rank_without_catalog_key_returns_local(self, tmp_path: Path, config_file: Path, capsys) -> None:  # type: ignore[no-untyped-def]
        conn = init_db(tmp_path / "cli.db")
        features = CandidateFeatures(
            candidate_id="s1",
            topics=["ai", "startups"],
            content_style={"interview": True},
            average_episode_length=45.0,
            complexity_level="intermediate",
            production_quality=80.0,
        )
        save_features(conn, "s1", SHOW_FEATURES, features.model_dump_json(), datetime.now())
        conn.close()
        prefs = tmp_path / "prefs.yaml"
        prefs.write_text(yaml.safe_dump({"topics": ["ai", "startups"]}))

        with patch.dict("os.environ", {}, clear=True):
            main(["rank", "--preferences", str(prefs), "--config", str(config_file)])

        captured = capsys.readouterr()
        matches = json.loads(captured.out)
        assert [m["candidate_id"] for m in matches] == ["s1"]
        assert "catalog unavailable" in captured.err

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Test Question File Storage
JSON and SQL batch files, collision-free naming and reading files back
"""

import json
import pytest
import sys
from pathlib import Path
from datetime import datetime

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cloudprepper.core.models import BatchRequest, GeneratedQuestion
from cloudprepper.storage.question_writer import QuestionFileManager, load_batch_file
from cloudprepper.storage.sql_format import (
    SqlParseError, escape_sql, parse_statements, render_insert, render_statements
)

FIXED_TIME = datetime(2026, 1, 5, 21, 48, 55)


def sample_questions():
    return [
        GeneratedQuestion(
            question_text="Which control limits an administrator's blast radius?",
            options=["Least privilege", "Shared root account", "Open security groups", "MFA"],
            correct_answers=[0],
            explanation="Least privilege restricts what a compromised admin can do.",
            domain="Cloud Security",
            category="Identity and access management",
            tags=["iam", "o'reilly"],
            references=["CompTIA Cloud+ objective 3.1"],
        ),
        GeneratedQuestion(
            question_text="Select TWO ways to cut egress cost (choose 2)",
            options=["Use a CDN", "Compress responses", "Add more regions", "Disable caching"],
            correct_answers=[0, 1],
            explanation="Caching at the edge and compression both reduce bytes leaving the cloud.",
            domain="Cloud Operations and Support",
            category="Cost optimization",
            cognitive_level="Analysis",
            skill_level="Advanced",
        ),
    ]


class TestPersist:
    """Writing batch files"""

    def setup_method(self):
        self.request = BatchRequest(
            certification_type="CV0-004", count=2, domain_name="Cloud Security",
            cognitive_levels=["Application"], output_format="json"
        )

    def test_json_record(self, tmp_path):
        manager = QuestionFileManager(tmp_path / "questions", now=lambda: FIXED_TIME)

        path = manager.persist(sample_questions(), request=self.request, job_id="msgbatch_01")

        assert path.name == "batch_CV0_004_Cloud_Security_2q_2026-01-05T21-48-55.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["success"] is True
        assert data["count"] == 2
        assert data["metadata"]["certification_type"] == "CV0-004"
        assert data["metadata"]["batch_id"] == "msgbatch_01"
        assert data["metadata"]["batch_processing"] is True
        assert data["metadata"]["generated_at"] == "2026-01-05T21:48:55"
        assert data["questions"][1]["multiple_answers"] == "1"

    def test_same_second_writes_do_not_collide(self, tmp_path):
        manager = QuestionFileManager(tmp_path, now=lambda: FIXED_TIME)

        first = manager.persist(sample_questions(), request=self.request)
        second = manager.persist(sample_questions(), request=self.request)
        third = manager.persist(sample_questions(), request=self.request)

        assert len({first, second, third}) == 3
        assert second.name.endswith("_2026-01-05T21-48-55-1.json")
        assert third.name.endswith("_2026-01-05T21-48-55-2.json")
        assert all(p.exists() for p in (first, second, third))

    def test_job_id_name_when_request_unknown(self, tmp_path):
        manager = QuestionFileManager(tmp_path, now=lambda: FIXED_TIME)

        path = manager.persist(sample_questions(), job_id="msgbatch_01ABC/xyz:very-long-identifier",
                               output_format="sql")

        assert path.name == "batch_msgbatch_01ABC_xyz_v_2q_2026-01-05T21-48-55.sql"

    def test_unknown_format_rejected(self, tmp_path):
        manager = QuestionFileManager(tmp_path)
        with pytest.raises(ValueError):
            manager.persist(sample_questions(), output_format="csv")


class TestSqlFormat:
    """SQL INSERT rendering"""

    def test_single_answer_statement(self):
        sql = render_insert(sample_questions()[0])

        assert sql.startswith("INSERT INTO prepper.comptia_cloud_plus_questions(")
        assert "nextval('prepper.question_id_seq')" in sql
        assert "administrator''s blast radius" in sql
        assert "'Least privilege',\n" in sql
        assert "ARRAY['Least privilege']" in sql
        assert "'[\"Least privilege\",\"Shared root account\"," in sql
        assert "::jsonb" in sql

    def test_multi_answer_statement(self):
        sql = render_insert(sample_questions()[1])
        assert "  NULL,\n" in sql
        assert "ARRAY['Use a CDN', 'Compress responses']" in sql
        assert "  1,\n" in sql

    def test_file_header_and_footer(self):
        text = render_statements(sample_questions(), {"certification_type": "CV0-004",
                                                      "domain_name": "Cloud Security"})
        lines = text.splitlines()
        assert lines[0] == "-- Generated SQL INSERT statements for CloudPrepper questions"
        assert "-- Certification: CV0-004" in lines
        assert "-- Domain: Cloud Security" in lines
        assert "-- Count: 2" in lines
        assert lines[-1] == "-- End of generated SQL statements"
        assert text.count("INSERT INTO") == 2

    def test_escape(self):
        assert escape_sql("it's") == "it''s"


class TestReadBack:
    """Files parse back into the questions that were written"""

    def test_sql_round_trip(self, tmp_path):
        manager = QuestionFileManager(tmp_path, now=lambda: FIXED_TIME)
        questions = sample_questions()
        path = manager.persist(questions, output_format="sql")

        loaded, metadata = manager.load_batch_file(path.name)

        assert metadata["format"] == "sql"
        assert loaded == questions

    def test_json_round_trip(self, tmp_path):
        manager = QuestionFileManager(tmp_path, now=lambda: FIXED_TIME)
        questions = sample_questions()
        request = BatchRequest(certification_type="SAA-C03", count=2)
        path = manager.persist(questions, request=request)

        loaded, metadata = load_batch_file(path)

        assert loaded == questions
        assert metadata["certification_type"] == "SAA-C03"
        assert metadata["format"] == "json"

    def test_duplicate_option_texts_keep_indices(self):
        question = GeneratedQuestion(
            question_text="Pick the second one",
            options=["Same", "Same", "Other"],
            correct_answers=[1],
            explanation="",
        )
        loaded = parse_statements(render_statements([question], {}))
        assert loaded[0].correct_answers == [1]

    def test_statement_with_semicolons_and_parentheses_in_text(self):
        question = GeneratedQuestion(
            question_text="What does (a; b) [c] mean?",
            options=["x); DROP TABLE", "y"],
            correct_answers=[0],
            explanation="-- not a comment",
        )
        loaded = parse_statements(render_statements([question], {}))
        assert loaded[0].question_text == "What does (a; b) [c] mean?"
        assert loaded[0].options[0] == "x); DROP TABLE"
        assert loaded[0].explanation == "-- not a comment"

    def test_garbage_rejected(self):
        with pytest.raises(SqlParseError):
            parse_statements("SELECT 1;")

    def test_json_without_questions_rejected(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"hello": "world"}), encoding="utf-8")
        with pytest.raises(ValueError):
            load_batch_file(path)

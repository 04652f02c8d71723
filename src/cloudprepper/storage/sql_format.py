#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SQL INSERT statement rendering and parsing
Renders generated questions as PostgreSQL INSERT statements and reads them back
"""

import json
from typing import Any, Dict, List, Sequence, Tuple

from ..core.models import GeneratedQuestion
from ..utils.constants import SQL_TARGET_TABLE, SQL_ID_SEQUENCE, SQL_NUMBER_SEQUENCE

COLUMNS: Tuple[str, ...] = (
    "question_id",
    "question_number",
    "category",
    "domain",
    "question_text",
    "options",
    "correct_answer",
    "explanation",
    "explanation_details",
    "multiple_answers",
    "correct_answers",
    "cognitive_level",
    "skill_level",
)


def escape_sql(text: str) -> str:
    """Escape a value for a single-quoted PostgreSQL string literal"""
    return text.replace("'", "''")


def quote(text: str) -> str:
    return f"'{escape_sql(text)}'"


def _json_literal(value: Any) -> str:
    """Render a jsonb literal"""
    return f"{quote(json.dumps(value, ensure_ascii=False, separators=(',', ':')))}::jsonb"


def _array_literal(values: Sequence[str]) -> str:
    """Render a TEXT[] constructor"""
    if not values:
        return "ARRAY[]::text[]"
    return "ARRAY[" + ", ".join(quote(v) for v in values) + "]"


def render_insert(question: GeneratedQuestion) -> str:
    """Render one INSERT statement"""
    correct_texts = [question.options[i] for i in question.correct_answers]
    correct_answer = "NULL" if question.multiple_answers else quote(correct_texts[0])
    # Domain doubles as the category column; the finer category lives in the document
    category = question.domain or "General"
    explanation_details = {
        "domain": question.domain,
        "category": question.category,
        "tags": list(question.tags),
        "references": list(question.references),
        "correct_indices": list(question.correct_answers),
    }

    values = [
        f"nextval('{SQL_ID_SEQUENCE}')",
        f"nextval('{SQL_NUMBER_SEQUENCE}')",
        quote(category),
        quote(question.domain or category),
        quote(question.question_text),
        _json_literal(question.options),
        correct_answer,
        quote(question.explanation),
        _json_literal(explanation_details),
        "1" if question.multiple_answers else "0",
        _array_literal(correct_texts),
        quote(question.cognitive_level),
        quote(question.skill_level),
    ]

    column_block = ",\n".join(f"  {c}" for c in COLUMNS)
    value_block = ",\n".join(f"  {v}" for v in values)
    return f"INSERT INTO {SQL_TARGET_TABLE}(\n{column_block}\n)\nVALUES (\n{value_block}\n);"


def render_statements(questions: Sequence[GeneratedQuestion], metadata: Dict[str, Any]) -> str:
    """
    Render a whole SQL file

    Args:
        questions: Questions to insert
        metadata: Header information (certification_type, domain_name, batch_id)

    Returns:
        SQL text, one statement per question
    """
    lines: List[str] = ["-- Generated SQL INSERT statements for CloudPrepper questions"]
    if metadata.get("certification_type"):
        lines.append(f"-- Certification: {metadata['certification_type']}")
    if metadata.get("domain_name"):
        lines.append(f"-- Domain: {metadata['domain_name']}")
    if metadata.get("batch_id"):
        lines.append(f"-- Batch: {metadata['batch_id']}")
    lines.append(f"-- Count: {len(questions)}")
    lines.append("")

    for question in questions:
        lines.append(render_insert(question))
        lines.append("")

    lines.append("-- End of generated SQL statements")
    return "\n".join(lines)


# ==================== Parsing ====================

class SqlParseError(ValueError):
    """SQL text does not have the shape written by render_statements"""


def _skip_comments_and_space(text: str, pos: int) -> int:
    while pos < len(text):
        if text[pos].isspace():
            pos += 1
        elif text.startswith("--", pos):
            newline = text.find("\n", pos)
            pos = len(text) if newline == -1 else newline + 1
        else:
            break
    return pos


def _scan_group(text: str, pos: int, opener: str, closer: str) -> int:
    """Return the index just past the closer matching text[pos] == opener"""
    if text[pos] != opener:
        raise SqlParseError(f"Expected {opener!r} at offset {pos}")
    depth = 0
    in_string = False
    i = pos
    while i < len(text):
        ch = text[i]
        if in_string:
            if ch == "'":
                if i + 1 < len(text) and text[i + 1] == "'":
                    i += 1
                else:
                    in_string = False
        elif ch == "'":
            in_string = True
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
            if depth == 0:
                if ch != closer:
                    raise SqlParseError(f"Mismatched {ch!r} at offset {i}")
                return i + 1
        i += 1
    raise SqlParseError(f"Unterminated {opener!r} starting at offset {pos}")


def _split_top_level(text: str) -> List[str]:
    """Split on commas outside string literals and brackets"""
    parts: List[str] = []
    depth = 0
    in_string = False
    start = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            if ch == "'":
                if i + 1 < len(text) and text[i + 1] == "'":
                    i += 1
                else:
                    in_string = False
        elif ch == "'":
            in_string = True
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append(text[start:i].strip())
            start = i + 1
        i += 1
    tail = text[start:].strip()
    if tail:
        parts.append(tail)
    return parts


def _unquote(token: str) -> str:
    token = token.strip()
    if len(token) < 2 or token[0] != "'" or token[-1] != "'":
        raise SqlParseError(f"Expected string literal, got {token[:40]!r}")
    return token[1:-1].replace("''", "'")


def _parse_value(token: str) -> Any:
    """Decode one VALUES entry"""
    token = token.strip()
    upper = token.upper()
    if upper == "NULL":
        return None
    if upper.startswith("NEXTVAL("):
        return None
    if token.endswith("::jsonb"):
        return json.loads(_unquote(token[:-len("::jsonb")]))
    if upper.startswith("ARRAY["):
        body = token
        if body.lower().endswith("::text[]"):
            body = body[:-len("::text[]")]
        inner = body[len("ARRAY["):-1]
        return [_unquote(part) for part in _split_top_level(inner)]
    if token.startswith("'"):
        return _unquote(token)
    try:
        return int(token)
    except ValueError:
        raise SqlParseError(f"Unrecognized value {token[:40]!r}")


def _correct_indices(options: List[str], correct_texts: List[str], details: Dict[str, Any]) -> List[int]:
    """Answer indices, from the stored index list or by matching option texts"""
    stored = details.get("correct_indices")
    if isinstance(stored, list) and all(isinstance(i, int) for i in stored):
        return list(stored)
    used: set = set()
    indices: List[int] = []
    for text in correct_texts:
        match = next((i for i, option in enumerate(options) if option == text and i not in used), None)
        if match is None:
            raise SqlParseError(f"Correct answer not among options: {text[:40]!r}")
        used.add(match)
        indices.append(match)
    return indices


def parse_statements(sql_text: str) -> List[GeneratedQuestion]:
    """
    Parse SQL written by render_statements back into questions

    Args:
        sql_text: File content

    Returns:
        Questions in file order
    """
    questions: List[GeneratedQuestion] = []
    marker = f"INSERT INTO {SQL_TARGET_TABLE}"
    pos = _skip_comments_and_space(sql_text, 0)

    while pos < len(sql_text):
        if not sql_text.startswith(marker, pos):
            raise SqlParseError(f"Expected INSERT statement at offset {pos}")
        pos += len(marker)

        columns_end = _scan_group(sql_text, pos, "(", ")")
        columns = [c.strip() for c in sql_text[pos + 1:columns_end - 1].split(",")]

        pos = _skip_comments_and_space(sql_text, columns_end)
        if not sql_text.startswith("VALUES", pos):
            raise SqlParseError(f"Expected VALUES at offset {pos}")
        pos = _skip_comments_and_space(sql_text, pos + len("VALUES"))

        values_end = _scan_group(sql_text, pos, "(", ")")
        tokens = _split_top_level(sql_text[pos + 1:values_end - 1])
        if len(tokens) != len(columns):
            raise SqlParseError(f"{len(columns)} columns but {len(tokens)} values")
        row = {column: _parse_value(token) for column, token in zip(columns, tokens)}

        pos = _skip_comments_and_space(sql_text, values_end)
        if pos < len(sql_text) and sql_text[pos] == ";":
            pos += 1
        pos = _skip_comments_and_space(sql_text, pos)

        details = row.get("explanation_details") or {}
        options = row["options"]
        questions.append(GeneratedQuestion(
            question_text=row["question_text"],
            options=options,
            correct_answers=_correct_indices(options, row.get("correct_answers") or [], details),
            explanation=row.get("explanation") or "",
            domain=details.get("domain") or row.get("domain"),
            category=details.get("category") or row.get("category"),
            cognitive_level=row.get("cognitive_level"),
            skill_level=row.get("skill_level"),
            tags=list(details.get("tags") or []),
            references=list(details.get("references") or []),
        ))

    return questions

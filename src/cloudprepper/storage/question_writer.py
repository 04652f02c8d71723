#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Question file storage module
Writes generated question batches as JSON or SQL files and reads them back
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
from datetime import datetime

from ..core.models import BatchRequest, GeneratedQuestion
from ..utils.constants import OUTPUT_FORMATS
from ..utils.helpers import sanitize_filename_part, format_file_timestamp
from .sql_format import render_statements, parse_statements

# Suffixes tried after the plain name collides
MAX_COLLISION_SUFFIX = 1000


class QuestionFileManager:
    """Question batch file manager"""

    def __init__(self, questions_dir: Union[str, Path], now: Callable[[], datetime] = datetime.now):
        """
        Initialize question file manager

        Args:
            questions_dir: Directory receiving batch files
            now: Clock used for filename timestamps
        """
        self.questions_dir = Path(questions_dir).expanduser()
        self._now = now
        self.logger = logging.getLogger('cloudprepper.storage')

    def build_filename_stem(self, count: int, request: Optional[BatchRequest] = None,
                            job_id: Optional[str] = None, timestamp: Optional[datetime] = None) -> str:
        """
        Build the filename without extension or collision suffix

        Args:
            count: Number of questions in the file
            request: Originating request, if known
            job_id: Backend job id, used when the request is unknown
            timestamp: File timestamp, if None use the manager clock

        Returns:
            Stem like batch_CV0_004_Cloud_Security_5q_2026-01-05T21-48-55
        """
        stamp = format_file_timestamp(timestamp or self._now())
        if request is not None:
            cert = sanitize_filename_part(request.certification_type)
            domain = sanitize_filename_part(request.domain_name or "mixed")
            return f"batch_{cert}_{domain}_{count}q_{stamp}"
        job_part = sanitize_filename_part(job_id or "unknown")
        return f"batch_{job_part}_{count}q_{stamp}"

    def _build_metadata(self, request: Optional[BatchRequest], job_id: Optional[str],
                        generated_at: datetime) -> Dict[str, Any]:
        metadata: Dict[str, Any] = request.metadata() if request is not None else {}
        metadata["batch_id"] = job_id
        metadata["batch_processing"] = True
        metadata["generated_at"] = generated_at.isoformat()
        return metadata

    def _render(self, questions: Sequence[GeneratedQuestion], metadata: Dict[str, Any],
                output_format: str) -> str:
        if output_format == "sql":
            return render_statements(questions, metadata)
        record = {
            "success": True,
            "count": len(questions),
            "questions": [q.to_dict() for q in questions],
            "metadata": metadata,
        }
        return json.dumps(record, ensure_ascii=False, indent=2)

    def _open_exclusive(self, stem: str, extension: str) -> Tuple[Path, Any]:
        """Open a new file, appending -1, -2, ... while the name is taken"""
        for suffix in range(MAX_COLLISION_SUFFIX + 1):
            name = f"{stem}.{extension}" if suffix == 0 else f"{stem}-{suffix}.{extension}"
            file_path = self.questions_dir / name
            try:
                return file_path, open(file_path, 'x', encoding='utf-8')
            except FileExistsError:
                continue
        raise FileExistsError(f"No free filename for {stem}.{extension} in {self.questions_dir}")

    def persist(self, questions: Sequence[GeneratedQuestion], request: Optional[BatchRequest] = None,
                job_id: Optional[str] = None, output_format: Optional[str] = None) -> Path:
        """
        Write a batch of questions to a new file

        Args:
            questions: Generated questions
            request: Originating request, if known
            job_id: Backend job id, if any
            output_format: 'json' or 'sql', defaults to the request's format

        Returns:
            Path of the written file
        """
        if output_format is None:
            output_format = request.output_format if request is not None else "json"
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"output_format must be one of {', '.join(OUTPUT_FORMATS)}")

        generated_at = self._now()
        metadata = self._build_metadata(request, job_id, generated_at)
        content = self._render(questions, metadata, output_format)
        stem = self.build_filename_stem(len(questions), request, job_id, generated_at)

        try:
            self.questions_dir.mkdir(parents=True, exist_ok=True)
            file_path, handle = self._open_exclusive(stem, output_format)
            with handle:
                handle.write(content)

            self.logger.info(f"Wrote {len(questions)} questions to {file_path}")
            return file_path

        except OSError as e:
            self.logger.error(f"Failed to write question file in {self.questions_dir}: {e}")
            raise

    def load_batch_file(self, file_path: Union[str, Path]) -> Tuple[List[GeneratedQuestion], Dict[str, Any]]:
        """
        Read a batch file written by persist

        Args:
            file_path: File path; relative paths resolve against the questions directory

        Returns:
            (questions, metadata); SQL files carry no metadata beyond the format
        """
        return load_batch_file(file_path, base_dir=self.questions_dir)


def load_batch_file(file_path: Union[str, Path],
                    base_dir: Optional[Path] = None) -> Tuple[List[GeneratedQuestion], Dict[str, Any]]:
    """
    Parse a JSON or SQL batch file

    Args:
        file_path: File path
        base_dir: Directory for relative paths

    Returns:
        (questions, metadata)
    """
    path = Path(file_path).expanduser()
    if not path.is_absolute() and base_dir is not None and not path.exists():
        path = base_dir / path

    with open(path, 'r', encoding='utf-8') as f:
        content = f.read()

    if path.suffix.lower() == ".sql":
        return parse_statements(content), {"format": "sql"}

    data = json.loads(content)
    if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
        raise ValueError(f"{path} is not a question batch file")
    questions = [GeneratedQuestion.from_dict(item) for item in data["questions"]]
    metadata = dict(data.get("metadata") or {})
    metadata["format"] = "json"
    return questions, metadata

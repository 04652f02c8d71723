# Question file storage module

from .question_writer import QuestionFileManager, load_batch_file
from .sql_format import render_statements, parse_statements, SqlParseError

__all__ = [
    'QuestionFileManager',
    'load_batch_file',
    'render_statements',
    'parse_statements',
    'SqlParseError',
]

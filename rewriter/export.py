"""Export helpers for rewrite job reports."""

from __future__ import annotations

import csv
import io
from typing import List

import openpyxl
from openpyxl.utils import get_column_letter

from .chunker import split_words
from .config import EXPORT_HEADERS
from .models import RewriteJob


def _report_rows(job: RewriteJob) -> List[list]:
    """One row per chunk: id, words, original text, rewritten text, AI score.

    The original column is the exact input substring the chunk was cut from.
    """
    spans = split_words(job.input_text)
    rows = []
    for chunk in sorted(job.chunks, key=lambda chunk: chunk.start_word):
        words = spans[chunk.start_word : chunk.end_word]
        original_text = job.input_text[words[0][1] : words[-1][2]] if words else ""
        rows.append([chunk.id, chunk.word_count, original_text, chunk.content, chunk.ai_score])
    return rows


def to_csv(job: RewriteJob) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADERS)
    for row in _report_rows(job):
        writer.writerow(row)
    return buffer.getvalue().encode("utf-8-sig")


def to_xlsx(job: RewriteJob) -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Rewrite"

    sheet.append(EXPORT_HEADERS)
    for row in _report_rows(job):
        sheet.append(row)

    for index, column_title in enumerate(EXPORT_HEADERS, start=1):
        column = sheet.column_dimensions[get_column_letter(index)]
        column.width = 60 if column_title in {"Original", "Rewritten"} else max(len(column_title) + 2, 12)

    summary = workbook.create_sheet("Summary")
    summary.append(["Job", job.id])
    summary.append(["Status", job.status])
    summary.append(["Provider", job.provider])
    summary.append(["Input AI score", job.input_ai_score])
    summary.append(["Output AI score", job.output_ai_score])

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def to_json(job: RewriteJob) -> dict:
    return {
        "jobId": job.id,
        "status": job.status,
        "outputText": job.output_text,
        "inputAiScore": job.input_ai_score,
        "outputAiScore": job.output_ai_score,
        "rows": [
            {"chunkId": row[0], "words": row[1], "original": row[2], "rewritten": row[3], "aiScore": row[4]}
            for row in _report_rows(job)
        ],
    }


def to_text(job: RewriteJob) -> bytes:
    return (job.output_text or "").encode("utf-8")

"""Pydantic request models for submission endpoints."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class SubmissionCreate(BaseModel):
    form_id: str
    submission_data: Dict[str, Any]
    metadata: Optional[Dict[str, Any]] = None


class SubmissionMetadataUpdate(BaseModel):
    metadata: Dict[str, Any]


__all__ = ["SubmissionCreate", "SubmissionMetadataUpdate"]

"""Accessors for process-wide state created by the app factory."""
from __future__ import annotations

import httpx
from fastapi import Request

from app.config import Settings
from app.services.studio_store import StudioStore
from app.services.synthesis import ImageSynthesizer


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_synthesizer(request: Request) -> ImageSynthesizer:
    return request.app.state.synthesizer


def get_studio_store(request: Request) -> StudioStore:
    return request.app.state.studio_store


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "-")

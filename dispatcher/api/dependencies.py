"""Shared FastAPI dependencies."""

from fastapi import Request

from dispatcher.pipeline.runner import DispatchPipeline


def get_pipeline(request: Request) -> DispatchPipeline:
    return request.app.state.pipeline

"""
FastAPI dependencies.

The workflow and the Google client are built once at startup and kept on
app.state; routers receive them through these functions.
"""

from fastapi import HTTPException, Request

from flower_market.services.google_contacts import GoogleContactsClient, OAuthStateStore
from flower_market.services.moderation import ModerationWorkflow


def get_workflow(request: Request) -> ModerationWorkflow:
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return workflow


def get_google_client(request: Request) -> GoogleContactsClient:
    client = getattr(request.app.state, "google_client", None)
    if client is None or not client.configured:
        raise HTTPException(status_code=503, detail="Google import is not configured")
    return client


def get_oauth_states(request: Request) -> OAuthStateStore:
    states = getattr(request.app.state, "oauth_states", None)
    if states is None:
        states = OAuthStateStore()
        request.app.state.oauth_states = states
    return states

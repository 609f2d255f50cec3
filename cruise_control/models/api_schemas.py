"""
Pydantic models for the HTTP presentation boundary.

Request bodies accepted by the FastAPI app; every field is optional so a client can send
only what it wants to change.
"""

from typing import Optional

from pydantic import BaseModel, Field

from cruise_control.models.call_session import AgentMode


class CallConfigRequest(BaseModel):
    """Body of ``PUT /call/config``."""
    target: Optional[str] = Field(None, description="Name or number to call (only while idle)")
    mode: Optional[AgentMode] = Field(None, description="Agent mode for the next engagement")
    goal: Optional[str] = Field(None, description="Objective appended to the agent directive")


class StartCallRequest(BaseModel):
    """Body of ``POST /call/start``."""
    target: Optional[str] = Field(None, description="Overrides the configured target")


class EngageRequest(BaseModel):
    """Body of ``POST /call/engage``."""
    mode: Optional[AgentMode] = None
    goal: Optional[str] = None

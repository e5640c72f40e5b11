from __future__ import annotations

from fastapi import Request

from token_broker.core.config import Settings
from token_broker.services.authorization_flow import AuthorizationFlowController
from token_broker.services.token_access import TokenAccessController

# Collaborators are built once by create_app() and parked on app.state, so
# each app instance (and each test) gets its own stores.


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_flow_controller(request: Request) -> AuthorizationFlowController:
    return request.app.state.flow_controller


def get_token_controller(request: Request) -> TokenAccessController:
    return request.app.state.token_controller

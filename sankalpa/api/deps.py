from fastapi import Request

from sankalpa.features.accounts.service import Services


def get_services(request: Request) -> Services:
    """Services wired at app construction; injected into every route."""
    return request.app.state.services

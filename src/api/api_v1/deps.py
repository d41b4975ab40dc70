from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlmodel import Session

from core.db import engine
from services.protocol import Protocol
from utils.web3_utils import require_address


def get_db() -> Generator:
    with Session(engine) as session:
        yield session


def get_protocol(request: Request) -> Protocol:
    return request.app.state.protocol


def get_caller(x_caller_address: Annotated[str, Header()]) -> str:
    return require_address(x_caller_address)


SessionDep = Annotated[Session, Depends(get_db)]
ProtocolDep = Annotated[Protocol, Depends(get_protocol)]
CallerDep = Annotated[str, Depends(get_caller)]

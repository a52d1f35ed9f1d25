# iptracker/api/reports.py

import ipaddress
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response

from iptracker.core.commands import CommandBus, ReportAddress
from iptracker.core.errors import CommandError, UnsupportedAddressError
from iptracker.core.rate_limit import REPORT_RATE_LIMIT, limiter

logger = logging.getLogger(__name__)

router = APIRouter()


def get_bus(request: Request) -> CommandBus:
    return request.app.state.command_bus


@router.post("/app")
@limiter.limit(REPORT_RATE_LIMIT)
async def report_address(
    request: Request,
    credential: Optional[str] = Header(default=None, alias="Credential"),
    bus: CommandBus = Depends(get_bus),
):
    """A VPN host reports its current address; the body is the address as text."""
    if credential is None:
        raise HTTPException(status_code=400, detail="Missing Credential header")

    body = await request.body()
    try:
        address = ipaddress.ip_address(body.decode("utf-8", errors="replace").strip())
    except ValueError:
        raise HTTPException(status_code=404, detail="Not Found")

    logger.debug("Report %s: %s", credential.split(":", 1)[0], address)

    try:
        await bus.submit(ReportAddress(credential=credential, address=address))
    except UnsupportedAddressError:
        return Response(status_code=406)
    except CommandError as e:
        logger.warning("Report rejected: %s", e)
        raise HTTPException(status_code=500, detail="Report rejected")

    return Response(status_code=200)

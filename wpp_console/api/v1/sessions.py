"""Console session endpoints."""

from fastapi import APIRouter

from wpp_console.api.deps import Console, Registry
from wpp_console.schemas import SessionInfo, SessionMount

router = APIRouter(prefix="/devices", tags=["sessions"])


@router.post("/{device_id}/session", response_model=SessionInfo, status_code=201)
async def mount_session(
    device_id: str,
    data: SessionMount,
    registry: Registry,
):
    """
    Mount a console session on a device.

    Loads the chat list and subscribes to the device's event stream. Mounting
    an already mounted device returns the running session.
    """
    session = await registry.mount(device_id, data.session_id, data.agent_id, data.agent_name)
    return session.info()


@router.get("/{device_id}/session", response_model=SessionInfo)
async def get_session(console: Console):
    """Get console session state, including the event stream connection state."""
    return console.info()


@router.delete("/{device_id}/session", status_code=204)
async def unmount_session(device_id: str, registry: Registry):
    """Stop a device's console session."""
    registry.get(device_id)
    await registry.unmount(device_id)


@router.get("/{device_id}/agents")
async def list_agents(console: Console):
    """List agents available as handover targets."""
    return {"agents": await console.list_agents()}

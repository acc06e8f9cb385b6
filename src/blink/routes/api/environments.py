"""Environment variable set routes."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from blink.db.connection import get_conn
from blink.db.queries import (
    delete_environment,
    get_environment,
    insert_environment,
    list_environments,
    update_environment,
)
from blink.errors import InvalidRequestError, NotFoundError

router = APIRouter(prefix="/environments", tags=["api-environments"])


class CreateEnvironmentBody(BaseModel):
    name: str
    description: str = ""
    created_by: str = ""
    variables: dict[str, str] = Field(default_factory=dict)


class UpdateEnvironmentBody(BaseModel):
    name: str | None = None
    description: str | None = None
    created_by: str | None = None
    variables: dict[str, str] | None = None


class VariablesBody(BaseModel):
    variables: dict[str, str]


@router.post("", status_code=201)
def create_environment(body: CreateEnvironmentBody) -> JSONResponse:
    if not body.name.strip():
        raise InvalidRequestError("name is required")
    with get_conn() as conn:
        env_id = insert_environment(
            conn,
            name=body.name,
            description=body.description,
            created_by=body.created_by,
            variables=body.variables,
        )
        env = get_environment(conn, env_id)
    return JSONResponse(status_code=201, content=env)


@router.get("")
def get_environments() -> dict[str, object]:
    with get_conn() as conn:
        return {"environments": list_environments(conn)}


@router.get("/{env_id}")
def read_environment(env_id: int) -> dict[str, object]:
    with get_conn() as conn:
        env = get_environment(conn, env_id)
    if env is None:
        raise NotFoundError("Environment not found")
    return env


@router.put("/{env_id}")
def modify_environment(env_id: int, body: UpdateEnvironmentBody) -> dict[str, object]:
    """Replace the given fields; ``variables`` is replaced as a whole."""
    fields = body.model_dump(exclude_none=True)
    if "name" in fields and not str(fields["name"]).strip():
        raise InvalidRequestError("name must not be empty")
    with get_conn() as conn:
        if get_environment(conn, env_id) is None:
            raise NotFoundError("Environment not found")
        update_environment(conn, env_id, fields)
        env = get_environment(conn, env_id)
    return env or {}


@router.patch("/{env_id}/variables")
def merge_environment_variables(env_id: int, body: VariablesBody) -> dict[str, object]:
    """Add new keys and overwrite existing ones; keys not mentioned are kept."""
    with get_conn() as conn:
        env = get_environment(conn, env_id)
        if env is None:
            raise NotFoundError("Environment not found")
        current = env["variables"] if isinstance(env["variables"], dict) else {}
        merged = {**current, **body.variables}
        update_environment(conn, env_id, {"variables": merged})
    return {"message": "Variables updated successfully", "variables": merged}


@router.delete("/{env_id}")
def remove_environment(env_id: int) -> dict[str, str]:
    with get_conn() as conn:
        if not delete_environment(conn, env_id):
            raise NotFoundError("Environment not found")
    return {"message": "Environment deleted successfully"}

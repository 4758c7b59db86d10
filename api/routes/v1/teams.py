"""
api/routes/v1/teams.py -- Team and roster REST endpoints.

Routes:
  POST   /api/v1/teams                      -- create a team (caller becomes owner)
  GET    /api/v1/teams[?scope=owner|member] -- teams the caller owns (default) or belongs to
  GET    /api/v1/teams/{team_id}            -- one team (roster members only)
  PUT    /api/v1/teams/{team_id}            -- update name/description (owner only)
  PATCH  /api/v1/teams/{team_id}            -- same as PUT
  DELETE /api/v1/teams/{team_id}            -- delete (owner only)
  POST   /api/v1/teams/{team_id}/members    -- add member by email (owner/admin)
  DELETE /api/v1/teams/{team_id}/members    -- remove member by email (owner/admin)

All ownership and membership decisions are made in teams/service.py; this
module only maps between HTTP and the service.
"""

from __future__ import annotations

from enum import Enum

from fastapi import APIRouter, Depends, Query, Request

from api.models import Envelope, MemberRequest, TeamCreate, TeamResponse, TeamUpdate, ok
from auth.dependencies import get_current_user
from auth.models import User
from teams.models import TeamPatch
from teams.service import TeamService

# Auth policy:
# - every route requires auth -- router-level dependency, handlers receive the
#   user through their own Depends(get_current_user) for the service call.
router = APIRouter(dependencies=[Depends(get_current_user)])


class TeamScope(str, Enum):
    owner = "owner"
    member = "member"


def _service(request: Request) -> TeamService:
    return request.app.state.team_service


@router.post("/teams", response_model=Envelope, status_code=201)
def create_team(request: Request, body: TeamCreate, current_user: User = Depends(get_current_user)) -> dict:
    team = _service(request).create(current_user, body.name, body.description)
    return ok(data=TeamResponse.from_team(team).model_dump(), msg="Team successfully created!")


@router.get("/teams", response_model=Envelope)
def list_teams(
    request: Request,
    scope: TeamScope = Query(default=TeamScope.owner),
    current_user: User = Depends(get_current_user),
) -> dict:
    """List teams. scope=owner (default) returns only teams the caller owns."""
    service = _service(request)
    if scope is TeamScope.member:
        teams = service.fetch_memberships(current_user)
    else:
        teams = service.fetch_all(current_user)
    return ok(data=[TeamResponse.from_team(t).model_dump() for t in teams], msg="Teams successfully fetched")


@router.get("/teams/{team_id}", response_model=Envelope)
def get_team(request: Request, team_id: int, current_user: User = Depends(get_current_user)) -> dict:
    team = _service(request).fetch_one(team_id, current_user)
    return ok(data=TeamResponse.from_team(team).model_dump(), msg="Team successfully fetched")


@router.put("/teams/{team_id}", response_model=Envelope)
@router.patch("/teams/{team_id}", response_model=Envelope)
def update_team(
    request: Request,
    team_id: int,
    body: TeamUpdate,
    current_user: User = Depends(get_current_user),
) -> dict:
    patch = TeamPatch(name=body.name, description=body.description)
    team = _service(request).update(team_id, patch, current_user)
    return ok(data=TeamResponse.from_team(team).model_dump(), msg="Team updated!")


@router.delete("/teams/{team_id}", response_model=Envelope)
def delete_team(request: Request, team_id: int, current_user: User = Depends(get_current_user)) -> dict:
    _service(request).delete(team_id, current_user)
    return ok(msg="Team successfully deleted!")


@router.post("/teams/{team_id}/members", response_model=Envelope)
def add_member(
    request: Request,
    team_id: int,
    body: MemberRequest,
    current_user: User = Depends(get_current_user),
) -> dict:
    team = _service(request).add_member(team_id, body.email, current_user)
    return ok(data=TeamResponse.from_team(team).model_dump(), msg="Member successfully added!")


@router.delete("/teams/{team_id}/members", response_model=Envelope)
def remove_member(
    request: Request,
    team_id: int,
    body: MemberRequest,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Remove a member. An email nobody registered is reported, not rejected."""
    team, notice = _service(request).remove_member(team_id, body.email, current_user)
    if notice is not None:
        return ok(data=TeamResponse.from_team(team).model_dump(), msg=notice, errors=[notice])
    return ok(data=TeamResponse.from_team(team).model_dump(), msg="Member successfully removed!")

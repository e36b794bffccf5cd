from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from existinfra.plan import PlanBuildError
from existinfra.plan.recipe import NodeType, build_upgrade_plan
from existinfra.plan.resources import PkgType

router = APIRouter(prefix="/plans")


class UpgradePlanRequest(BaseModel):
    version: str
    pkg_type: PkgType = PkgType.RPM
    node_type: NodeType = NodeType.WORKER


@router.post("/upgrade")
def upgrade_plan(req: UpgradePlanRequest):
    """Render the plan upgrading a node, without running it."""
    try:
        plan = build_upgrade_plan(req.pkg_type, req.version, req.node_type)
    except (PlanBuildError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"version": req.version, "nodeType": req.node_type.value, "pkgType": req.pkg_type.value, **plan.to_dict()}

import json

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from boarding.api.dependencies import (
    CurrentUser,
    get_current_user,
    get_request_caches,
    require_tour_manager,
)
from boarding.core.db import get_db
from boarding.core.editions import Capability, edition_info, require_capability
from boarding.schemas.tours import (
    EditionRead,
    ImportResult,
    TourEnabledUpdate,
    TourRead,
    TourSave,
    TourSaveResponse,
    UserTourRead,
)
from boarding.services.export import ExportService
from boarding.services.importer import ImportService, parse_csv, wrap_tours
from boarding.services.mutation import TourMutationService
from boarding.services.query import TourQueryService
from boarding.sites.context import SiteContext
from boarding.sites.dependencies import get_site_context


router = APIRouter(tags=["tours"])


@router.get("/tours", response_model=list[TourRead])
def list_tours(
    db=Depends(get_db),
    site: SiteContext = Depends(get_site_context),
    caches=Depends(get_request_caches),
    _user: CurrentUser = Depends(require_tour_manager),
):
    return TourQueryService(db, site, caches).get_all_tours()


@router.post("/tours", response_model=TourSaveResponse)
def save_tour(
    payload: TourSave,
    db=Depends(get_db),
    site: SiteContext = Depends(get_site_context),
    caches=Depends(get_request_caches),
    _user: CurrentUser = Depends(require_tour_manager),
):
    # Unset optional fields are dropped so "no user_group_ids" keeps existing groups.
    data = payload.model_dump(exclude_none=True)
    tour_pk = TourMutationService(db, site, caches).save_tour(data)
    return TourSaveResponse(id=tour_pk)


# Declared before /tours/{tour_pk} so "export" is not parsed as an id.
@router.get("/tours/export")
def export_tours(
    tour_id: int | None = Query(default=None),
    db=Depends(get_db),
    site: SiteContext = Depends(get_site_context),
    caches=Depends(get_request_caches),
    _user: CurrentUser = Depends(require_tour_manager),
):
    require_capability(Capability.IMPORT_EXPORT)
    query = TourQueryService(db, site, caches)
    exporter = ExportService(site)
    if tour_id is not None:
        tour = query.get_tour_by_id(tour_id)
        tours = [tour]
        filename = exporter.generate_tour_filename(tour)
    else:
        tours = query.get_all_tours()
        if not tours:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No tours to export")
        filename = exporter.generate_all_tours_filename()
    response = JSONResponse(content=json.loads(json.dumps(exporter.export_tours(tours), default=str)))
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response


@router.post("/tours/import", response_model=ImportResult)
async def import_tours(
    request: Request,
    filename: str | None = Query(default=None),
    db=Depends(get_db),
    site: SiteContext = Depends(get_site_context),
    caches=Depends(get_request_caches),
    _user: CurrentUser = Depends(require_tour_manager),
):
    require_capability(Capability.IMPORT_EXPORT)
    body = await request.body()
    content_type = request.headers.get("content-type", "")
    is_csv = "csv" in content_type or (filename or "").lower().endswith(".csv")
    if filename is None:
        filename = "import.csv" if is_csv else "import.json"
    ImportService.validate_upload(filename, len(body))

    text = body.decode("utf-8-sig", errors="replace")
    if is_csv:
        data = wrap_tours(parse_csv(text))
    else:
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid JSON format: {exc}",
            ) from exc

    importer = ImportService(db, site, caches)
    results = importer.import_data(data)
    return ImportResult(**results, message=importer.build_import_message(results))


@router.get("/tours/{tour_pk}", response_model=TourRead)
def get_tour(
    tour_pk: int,
    db=Depends(get_db),
    site: SiteContext = Depends(get_site_context),
    caches=Depends(get_request_caches),
    _user: CurrentUser = Depends(require_tour_manager),
):
    return TourQueryService(db, site, caches).get_tour_by_id(tour_pk)


@router.delete("/tours/{tour_pk}")
def delete_tour(
    tour_pk: int,
    db=Depends(get_db),
    site: SiteContext = Depends(get_site_context),
    caches=Depends(get_request_caches),
    _user: CurrentUser = Depends(require_tour_manager),
):
    TourMutationService(db, site, caches).delete_tour(tour_pk)
    return {"success": True}


@router.post("/tours/{tour_pk}/duplicate", response_model=TourSaveResponse)
def duplicate_tour(
    tour_pk: int,
    db=Depends(get_db),
    site: SiteContext = Depends(get_site_context),
    caches=Depends(get_request_caches),
    _user: CurrentUser = Depends(require_tour_manager),
):
    new_pk = TourMutationService(db, site, caches).duplicate_tour(tour_pk)
    return TourSaveResponse(id=new_pk)


@router.post("/tours/{tour_pk}/enabled")
def set_tour_enabled(
    tour_pk: int,
    payload: TourEnabledUpdate,
    db=Depends(get_db),
    site: SiteContext = Depends(get_site_context),
    caches=Depends(get_request_caches),
    _user: CurrentUser = Depends(require_tour_manager),
):
    site_id = payload.site_id if payload.site_id is not None else site.site_id
    TourMutationService(db, site, caches).set_tour_enabled_for_site(tour_pk, site_id, payload.enabled)
    return {"success": True, "site_id": site_id, "enabled": payload.enabled}


@router.get("/me/tours", response_model=list[UserTourRead])
def list_my_tours(
    db=Depends(get_db),
    site: SiteContext = Depends(get_site_context),
    caches=Depends(get_request_caches),
    user: CurrentUser = Depends(get_current_user),
):
    return TourQueryService(db, site, caches).get_tours_for_user(user.id, user.group_ids)


@router.post("/me/tours/{tour_ref}/complete")
def complete_tour(
    tour_ref: str,
    db=Depends(get_db),
    site: SiteContext = Depends(get_site_context),
    caches=Depends(get_request_caches),
    user: CurrentUser = Depends(get_current_user),
):
    TourMutationService(db, site, caches).mark_tour_completed(tour_ref, user.id)
    return {"success": True}


@router.get("/edition", response_model=EditionRead)
def read_edition():
    return edition_info()

from sqlalchemy.orm import Session

from boarding.models.sites import Site


def get_site_by_id(db: Session, site_id: int) -> Site | None:
    return db.query(Site).filter(Site.id == site_id).first()


def get_site_by_handle(db: Session, handle: str) -> Site | None:
    return db.query(Site).filter(Site.handle == handle).first()


def get_primary_site(db: Session) -> Site | None:
    site = db.query(Site).filter(Site.primary.is_(True)).order_by(Site.id.asc()).first()
    if site:
        return site
    return db.query(Site).order_by(Site.id.asc()).first()


def list_sites(db: Session) -> list[Site]:
    return db.query(Site).order_by(Site.id.asc()).all()


def list_site_ids(db: Session) -> list[int]:
    return [row[0] for row in db.query(Site.id).order_by(Site.id.asc()).all()]


def create_site(
    db: Session,
    handle: str,
    name: str,
    *,
    language: str = "en-US",
    primary: bool = False,
) -> Site:
    existing = get_site_by_handle(db, handle)
    if existing:
        raise ValueError("Site handle already exists.")
    if primary:
        db.query(Site).filter(Site.primary.is_(True)).update(
            {Site.primary: False}, synchronize_session=False
        )
    site = Site(handle=handle, name=name, language=language, primary=primary)
    db.add(site)
    db.commit()
    db.refresh(site)
    return site

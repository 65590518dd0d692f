# Filename: neodrive/db.py
from fastapi import Request
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session, select

from .config import Settings
from .models import SubscriptionPlan


def make_engine(settings: Settings) -> Engine:
    database_url = settings.database_url
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, echo=False, connect_args=connect_args)


def init_db(engine: Engine, settings: Settings) -> None:
    """Create DB tables and the local data dir"""
    settings.storage_path.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)


def seed_plans(engine: Engine, settings: Settings) -> None:
    """Register the paid tiers whose Stripe price ids are configured."""
    configured = {
        "pro": (settings.stripe_pro_price_id, settings.pro_plan_price),
        "premium": (settings.stripe_premium_price_id, settings.premium_plan_price),
    }
    with Session(engine) as session:
        for name, (price_id, price) in configured.items():
            if not price_id:
                continue
            plan = session.exec(select(SubscriptionPlan).where(SubscriptionPlan.name == name)).first()
            if plan is None:
                plan = SubscriptionPlan(name=name, price=price, stripe_price_id=price_id)
            else:
                plan.price, plan.stripe_price_id = price, price_id
            session.add(plan)
        session.commit()


def get_session(request: Request):
    """Yield a DB session (dependency)."""
    with Session(request.app.state.engine) as session:
        yield session

"""
FastAPI app
"""

from importlib.metadata import version

from fastapi import FastAPI

from .dependencies import DATABASE_MANAGER, POLICY_ENGINE, SETTINGS, logger
from .errors import add_exception_handlers
from .groups import group_app
from .things import thing_app
from .users import user_app


async def lifespan(app: FastAPI):
    settings = SETTINGS()
    app.settings = settings

    log = logger().bind(
        database_type=settings.database_type,
        policy_engine_url=settings.policy_engine_url,
        use_mock_engine=settings.use_mock_engine,
    )

    if settings.create_tables:
        await DATABASE_MANAGER().create_all()
        await log.ainfo("api.tables_created")

    await log.ainfo("api.started")

    yield

    await POLICY_ENGINE().aclose()

    await DATABASE_MANAGER().dispose()
    await log.ainfo("api.stopped")


app = FastAPI(
    lifespan=lifespan,
    title="tuplegate API",
    summary=(
        "Users, things and groups whose access is decided by an external "
        "relationship-based policy engine."
    ),
    version=version("tuplegate"),
)

app = add_exception_handlers(app)

app.include_router(group_app, prefix="/groups")
app.include_router(thing_app, prefix="/things")
app.include_router(user_app, prefix="/users")

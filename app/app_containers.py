from dependency_injector import containers, providers
from app.core.settings import settings
from app.storage.database import Database
from app.v1_0.v1_containers import APIContainer

class ApplicationContainer(containers.DeclarativeContainer):
    wiring_config = containers.WiringConfiguration(
        modules=[
                "app.v1_0.routers.person_router",
                "app.v1_0.routers.loan_router",
                "app.v1_0.routers.payment_router",
            ]
    )
    database = providers.Singleton(
        Database,
        url=settings.DATABASE_URL.get_secret_value(),
        echo=settings.DEBUG,
        ssl=settings.DB_SSL,
    )

    api_container = providers.Container(
        APIContainer
    )

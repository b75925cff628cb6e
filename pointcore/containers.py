from dependency_injector import containers, providers

from pointcore.config import get_settings
from pointcore.database.connection import build_engine, build_session_factory
from pointcore.services.rate_limit_service import init_rate_limiter


class Container(containers.DeclarativeContainer):
    """Application container - 프로세스 수명 동안 유지되는 구성요소"""

    config = providers.Singleton(get_settings)

    engine = providers.Singleton(build_engine, settings=config)
    session_factory = providers.Singleton(build_session_factory, engine=engine)

    # 시작 시 생성, shutdown_resources() 시 close()
    rate_limiter = providers.Resource(init_rate_limiter, settings=config)

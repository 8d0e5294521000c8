from mangum import Mangum

from reward_ledger.api import create_app
from reward_ledger.config import Settings, configure_logging

settings = Settings.from_env()
configure_logging(settings.log_level)

app = create_app(settings=settings, root_path="/api")

handler = Mangum(app)

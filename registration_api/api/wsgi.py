from registration_api.api.app import create_app
from registration_api.utils.config import load_settings


application = create_app(load_settings())

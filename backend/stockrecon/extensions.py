# Overview: Flask extension instances; the SQL store accessor and Alembic migrations share `db`.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

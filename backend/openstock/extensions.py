# Overview: Shared extension instances: the ledger database and its Alembic migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Models and services import `db`; create_app() binds it to an app.
db = SQLAlchemy()
migrate = Migrate(compare_type=True)

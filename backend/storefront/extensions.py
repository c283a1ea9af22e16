# Overview: Shared Flask extensions; models bind to `db`, Alembic runs through `migrate`.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate(compare_type=True)

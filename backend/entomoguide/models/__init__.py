# Importing the models registers their tables on Base.metadata (create_all, Alembic)
from entomoguide.models.account import Account, AccountStatus, Role
from entomoguide.models.catalog import Category, Insect, InsectImage

__all__ = ["Account", "AccountStatus", "Role", "Category", "Insect", "InsectImage"]

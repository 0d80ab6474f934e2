"""tqkit: plugin packages for FastAPI and a generic repository / unit of work
over SQLAlchemy's asyncio ORM.

Subpackages
-----------
packages       Pack discovery, service registration, route mapping and
               module localization for a FastAPI application.
uow            Generic ``Repository`` and ``UnitOfWork`` over ``AsyncSession``.
core           Settings and the exception hierarchy.
observability  Structured logging setup.
"""

__version__ = "0.3.0"

"""Driver credential storage and lookup."""

import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from bustrack import security
from bustrack.errors import AuthenticationError, ConflictError, DriverNotFound
from bustrack.models.tables import Driver
from bustrack.schemas.auth import LoginRequest, RegisterRequest

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(self, session_factory: async_sessionmaker) -> None:
        self.session_factory = session_factory

    async def find_driver_by_email_or_license(
        self, email: str | None, license_number: str | None
    ) -> Driver | None:
        clauses = []
        if email:
            clauses.append(Driver.email == email.strip().lower())
        if license_number:
            clauses.append(Driver.license_number == license_number.strip().upper())
        if not clauses:
            return None
        async with self.session_factory() as session:
            result = await session.execute(select(Driver).where(or_(*clauses)).limit(1))
            return result.scalar_one_or_none()

    async def get(self, driver_id: int) -> Driver:
        async with self.session_factory() as session:
            driver = await session.get(Driver, driver_id)
        if driver is None:
            raise DriverNotFound()
        return driver

    async def create_driver(self, req: RegisterRequest) -> Driver:
        email = req.email.strip().lower()
        license_number = req.license_number.strip().upper()

        existing = await self.find_driver_by_email_or_license(email, license_number)
        if existing is not None:
            if existing.email == email:
                raise ConflictError("Email already registered")
            raise ConflictError("License number already registered")

        driver = Driver(
            name=req.name.strip(),
            email=email,
            phone=req.phone.strip(),
            password_hash=security.hash_password(req.password),
            license_number=license_number,
            bus_number=req.bus_number.strip().upper() if req.bus_number else None,
            route_type=req.route_type,
            home_city=req.home_city.strip() if req.home_city else None,
            operating_cities=[c.strip() for c in req.operating_cities if c.strip()],
        )
        async with self.session_factory() as session:
            session.add(driver)
            try:
                await session.commit()
            except IntegrityError:
                # Lost a race with a concurrent registration
                await session.rollback()
                raise ConflictError("Email or license number already registered")
        logger.info("Registered driver %d (%s)", driver.id, driver.license_number)
        return driver

    @staticmethod
    def verify_password(driver: Driver, plaintext: str) -> bool:
        return security.verify_password(driver.password_hash, plaintext)

    async def authenticate(self, req: LoginRequest) -> Driver:
        driver = await self.find_driver_by_email_or_license(req.email, req.license_number)
        if driver is None or not self.verify_password(driver, req.password):
            raise AuthenticationError("Invalid credentials")
        return driver

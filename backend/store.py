"""Tenant-scoped repository over the students, tests and results collections."""
import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from errors import BackendWriteError
from models import ResultRecord, StudentRecord, TestRecord, iso_now

logger = logging.getLogger(__name__)

MAX_DOCUMENTS = 50000


class TenantStore:
    """Reads and writes one tenant's entities.

    Every query carries the tenant's ``tenant_id`` so callers never build
    filters themselves, and every document comes back as a typed record.
    """

    def __init__(self, db: AsyncIOMotorDatabase, tenant_id: str):
        if not tenant_id:
            raise ValueError("tenant_id is required")
        self.db = db
        self.tenant_id = tenant_id

    def _scoped(self, **filters: Any) -> Dict[str, Any]:
        return {"tenant_id": self.tenant_id, **filters}

    async def _insert(self, collection: str, document: Dict[str, Any]) -> None:
        try:
            await self.db[collection].insert_one(dict(document))
        except PyMongoError as exc:
            raise BackendWriteError(collection, str(exc), exc) from exc

    async def _update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> None:
        try:
            await self.db[collection].update_one(self._scoped(id=record_id), {"$set": changes})
        except PyMongoError as exc:
            raise BackendWriteError(collection, str(exc), exc) from exc

    # Students

    async def find_student(self, external_id: str) -> Optional[StudentRecord]:
        doc = await self.db.students.find_one(self._scoped(external_id=external_id), {"_id": 0})
        return StudentRecord(**doc) if doc else None

    async def get_student(self, student_id: str) -> Optional[StudentRecord]:
        doc = await self.db.students.find_one(self._scoped(id=student_id), {"_id": 0})
        return StudentRecord(**doc) if doc else None

    async def insert_student(self, external_id: str, name: str, grade: str = "") -> StudentRecord:
        record = StudentRecord(tenant_id=self.tenant_id, external_id=external_id, name=name, grade=grade)
        await self._insert("students", record.model_dump())
        return record

    async def update_student(self, student_id: str, changes: Dict[str, Any]) -> None:
        await self._update("students", student_id, {**changes, "updated_at": iso_now()})

    async def list_students(self) -> List[StudentRecord]:
        docs = await self.db.students.find(self._scoped(), {"_id": 0}).sort("name", 1).to_list(MAX_DOCUMENTS)
        return [StudentRecord(**doc) for doc in docs]

    # Tests

    async def find_test(self, name: str, date: str) -> Optional[TestRecord]:
        doc = await self.db.tests.find_one(self._scoped(name=name, date=date), {"_id": 0})
        return TestRecord(**doc) if doc else None

    async def insert_test(self, name: str, date: str) -> TestRecord:
        record = TestRecord(tenant_id=self.tenant_id, name=name, date=date)
        await self._insert("tests", record.model_dump())
        return record

    async def list_tests(self) -> List[TestRecord]:
        """Most recent first."""
        docs = await self.db.tests.find(self._scoped(), {"_id": 0}).sort("date", -1).to_list(MAX_DOCUMENTS)
        return [TestRecord(**doc) for doc in docs]

    # Results

    async def find_result(self, student_id: str, test_id: str) -> Optional[ResultRecord]:
        doc = await self.db.results.find_one(
            self._scoped(student_id=student_id, test_id=test_id), {"_id": 0}
        )
        return ResultRecord(**doc) if doc else None

    async def insert_result(
        self,
        student_id: str,
        test_id: str,
        test_date: str,
        overall_score: float,
        domain_scores: Optional[Dict[str, float]] = None,
    ) -> ResultRecord:
        record = ResultRecord(
            tenant_id=self.tenant_id,
            student_id=student_id,
            test_id=test_id,
            test_date=test_date,
            overall_score=overall_score,
            domain_scores=domain_scores or {},
        )
        await self._insert("results", record.model_dump())
        return record

    async def list_results(
        self, student_id: Optional[str] = None, test_id: Optional[str] = None
    ) -> List[ResultRecord]:
        """Results ordered by test date, most recent first."""
        filters: Dict[str, Any] = {}
        if student_id:
            filters["student_id"] = student_id
        if test_id:
            filters["test_id"] = test_id
        docs = (
            await self.db.results.find(self._scoped(**filters), {"_id": 0})
            .sort("test_date", -1)
            .to_list(MAX_DOCUMENTS)
        )
        return [ResultRecord(**doc) for doc in docs]

import asyncio
import aiohttp
import logging
from typing import Any, Dict, List, Optional
from datetime import datetime
from urllib.parse import quote

from app.core.exceptions import UpstreamUnavailable
from app.models.catalog import Faq, Interaction, Product
from app.utils.helpers import escape_formula_string

logger = logging.getLogger(__name__)

class AirtableService:
    """Record store client: product catalog, FAQs, interaction and feedback logs"""

    PAGE_SIZE = 100

    def __init__(
        self,
        api_key: str,
        base_id: str,
        products_table: str = "Products",
        faqs_table: str = "FAQs",
        interactions_table: str = "Interactions",
        feedback_table: str = "Feedback",
        api_url: str = "https://api.airtable.com/v0",
        timeout: float = 10.0
    ):
        self.api_key = api_key
        self.base_id = base_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.tables = {
            "products": products_table,
            "faqs": faqs_table,
            "interactions": interactions_table,
            "feedback": feedback_table
        }
        self.session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_settings(cls, settings) -> "AirtableService":
        return cls(
            api_key=settings.airtable_api_key,
            base_id=settings.airtable_base_id,
            products_table=settings.airtable_products_table,
            faqs_table=settings.airtable_faqs_table,
            interactions_table=settings.airtable_interactions_table,
            feedback_table=settings.airtable_feedback_table,
            api_url=settings.airtable_api_url,
            timeout=settings.airtable_timeout
        )

    async def initialize(self):
        if not self.api_key or not self.base_id:
            logger.warning("Airtable credentials not configured; catalog calls will fail")
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json"
            }
        )
        logger.info(f"Airtable client ready for base {self.base_id or '<unset>'}")

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

    def _table_url(self, table_key: str) -> str:
        return f"{self.api_url}/{self.base_id}/{quote(self.tables[table_key], safe='')}"

    async def _request(self, method: str, table_key: str, **kwargs) -> Dict[str, Any]:
        if self.session is None:
            raise UpstreamUnavailable("Airtable client is not initialized")

        try:
            async with self.session.request(method, self._table_url(table_key), **kwargs) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    logger.error(f"Airtable {method} {table_key} returned {response.status}: {error_text[:200]}")
                    raise UpstreamUnavailable(f"Airtable returned status {response.status} for {table_key}")
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Airtable {method} {table_key} failed: {type(e).__name__}: {e}")
            raise UpstreamUnavailable(f"Airtable request failed for {table_key}") from e

    async def _select(
        self,
        table_key: str,
        formula: str = "",
        sort_field: Optional[str] = None,
        sort_direction: str = "asc",
        max_records: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        params: Dict[str, str] = {"pageSize": str(self.PAGE_SIZE)}
        if formula:
            params["filterByFormula"] = formula
        if sort_field:
            params["sort[0][field]"] = sort_field
            params["sort[0][direction]"] = sort_direction
        if max_records:
            params["maxRecords"] = str(max_records)

        records: List[Dict[str, Any]] = []
        while True:
            data = await self._request("GET", table_key, params=params)
            records.extend(data.get("records", []))
            offset = data.get("offset")
            if not offset:
                return records
            params["offset"] = offset

    async def _create(self, table_key: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", table_key, json={"fields": fields})

    @staticmethod
    def _to_product(record: Dict[str, Any]) -> Product:
        fields = record.get("fields", {})
        return Product(
            id=record["id"],
            name=fields.get("Product Name") or "",
            description=fields.get("Description") or "",
            price=fields.get("Price") or 0,
            category=fields.get("Category"),
            image_url=fields.get("Image URL")
        )

    @staticmethod
    def _to_faq(record: Dict[str, Any]) -> Faq:
        fields = record.get("fields", {})
        return Faq(
            id=record["id"],
            question=fields.get("Question") or "",
            answer=fields.get("Answer") or "",
            category=fields.get("Category")
        )

    @staticmethod
    def _to_interaction(record: Dict[str, Any]) -> Interaction:
        fields = record.get("fields", {})
        return Interaction(
            id=record["id"],
            phone_number=fields.get("Phone Number") or "",
            message=fields.get("Message") or "",
            message_type=fields.get("Message Type") or "",
            timestamp=fields.get("Timestamp"),
            session_id=fields.get("Session ID")
        )

    async def get_products(self, query: str = "") -> List[Product]:
        formula = ""
        if query:
            formula = f'SEARCH(LOWER("{escape_formula_string(query)}"), LOWER({{Product Name}}))'
        records = await self._select("products", formula, sort_field="Product Name")
        return [self._to_product(record) for record in records]

    async def search_products(self, query: str) -> List[Product]:
        needle = escape_formula_string(query.strip())
        if not needle:
            return []
        formula = (
            f'OR('
            f'SEARCH(LOWER("{needle}"), LOWER({{Product Name}})), '
            f'SEARCH(LOWER("{needle}"), LOWER({{Description}})), '
            f'SEARCH(LOWER("{needle}"), LOWER({{Category}}))'
            f')'
        )
        records = await self._select("products", formula, sort_field="Product Name")
        products = [self._to_product(record) for record in records]
        logger.info(f"Product search '{query}' returned {len(products)} result(s)")
        return products

    async def get_faqs(self, category: str = "") -> List[Faq]:
        formula = f'{{Category}} = "{escape_formula_string(category)}"' if category else ""
        records = await self._select("faqs", formula, sort_field="Question")
        return [self._to_faq(record) for record in records]

    async def save_interaction(
        self,
        phone_number: str,
        message: str,
        message_type: str,
        timestamp: Optional[datetime] = None,
        session_id: str = ""
    ) -> Dict[str, Any]:
        return await self._create("interactions", {
            "Phone Number": phone_number,
            "Message": message,
            "Message Type": message_type,
            "Timestamp": (timestamp or datetime.now()).isoformat(),
            "Session ID": session_id
        })

    async def save_feedback(
        self,
        phone_number: str,
        feedback: str,
        timestamp: Optional[datetime] = None
    ) -> Dict[str, Any]:
        return await self._create("feedback", {
            "Phone Number": phone_number,
            "Feedback": feedback,
            "Timestamp": (timestamp or datetime.now()).isoformat(),
            "Status": "New"
        })

    async def get_interactions(self, phone_number: Optional[str] = None, limit: int = 50) -> List[Interaction]:
        formula = f'{{Phone Number}} = "{escape_formula_string(phone_number)}"' if phone_number else ""
        records = await self._select(
            "interactions",
            formula,
            sort_field="Timestamp",
            sort_direction="desc",
            max_records=limit
        )
        return [self._to_interaction(record) for record in records[:limit]]

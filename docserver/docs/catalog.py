"""Documentation catalog for locally stored llms.txt files.

The catalog is the lookup layer behind the documentation tools. It handles:
- Lazy, one-time initialization (default topics plus optional topics.json)
- Category/tag filtering and keyword search
- Reading topic content from the local store
"""

import json
import logging
from pathlib import Path

import anyio
from pydantic import TypeAdapter, ValidationError

from docserver.settings import doc_settings
from docserver.types import BrokenInvariant, DocumentationTopic, TopicsResponse

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "topics.json"

_topic_list = TypeAdapter(list[DocumentationTopic])


def default_topics(store_dir: Path) -> list[DocumentationTopic]:
	"""Topics that ship with the server."""
	return [
		DocumentationTopic(
			id="yfiles-layout",
			name="yFiles Layout Algorithms",
			description="Overview of layout algorithms available in yFiles",
			category="yFiles",
			tags=["layout", "algorithms", "graph"],
			llm_file_path=store_dir / "yfiles-layout.llm.txt",
		),
	]


def _unique_categories(topics: list[DocumentationTopic]) -> list[str]:
	return list(dict.fromkeys(topic.category for topic in topics))


class DocumentationCatalog:
	"""In-memory catalog of documentation topics.

	Call initialize() once before any lookup. Lookups on an uninitialized
	catalog raise BrokenInvariant.
	"""

	def __init__(self, store_dir: Path | None = None, topics: list[DocumentationTopic] | None = None) -> None:
		self.store_dir = Path(store_dir) if store_dir is not None else doc_settings.local_store_dir
		self._seed = topics
		self._topics: list[DocumentationTopic] = []
		self._initialized = False
		self._init_lock = anyio.Lock()

	@property
	def initialized(self) -> bool:
		return self._initialized

	async def initialize(self) -> None:
		"""Load default topics and any topics listed in the store's topics.json."""
		async with self._init_lock:
			if self._initialized:
				return

			logger.info("Initializing documentation catalog")
			topics = list(self._seed) if self._seed is not None else default_topics(self.store_dir)
			topics.extend(await self._load_catalog_file())

			self._topics = topics
			self._initialized = True
			logger.info(f"Documentation catalog initialized with {len(self._topics)} topics")

	async def _load_catalog_file(self) -> list[DocumentationTopic]:
		catalog_path = anyio.Path(self.store_dir / CATALOG_FILENAME)
		if not await catalog_path.exists():
			return []

		try:
			raw = json.loads(await catalog_path.read_text(encoding="utf-8"))
			topics = _topic_list.validate_python(raw)
		except (json.JSONDecodeError, ValidationError) as e:
			raise BrokenInvariant(f"Invalid topic catalog {catalog_path}: {e}") from e

		# Relative file paths are resolved against the store directory
		for topic in topics:
			if not topic.llm_file_path.is_absolute():
				topic.llm_file_path = self.store_dir / topic.llm_file_path
		logger.debug(f"Loaded {len(topics)} topics from {catalog_path}")
		return topics

	def _ensure_initialized(self) -> None:
		if not self._initialized:
			raise BrokenInvariant("DocumentationCatalog not initialized. Call initialize() first.")

	def get_available_topics(
		self,
		category: str | None = None,
		tags: list[str] | None = None,
	) -> TopicsResponse:
		"""Get topics, optionally filtered by category and tags.

		Args:
		    category: Case-insensitive substring of the topic category
		    tags: A topic matches when it carries any of these tags

		Returns:
		    TopicsResponse with matching topics and their unique categories
		"""
		self._ensure_initialized()

		topics = list(self._topics)
		if category:
			needle = category.lower()
			topics = [t for t in topics if needle in t.category.lower()]
		if tags:
			wanted = {tag.lower() for tag in tags}
			topics = [t for t in topics if wanted.intersection(tag.lower() for tag in t.tags)]

		return TopicsResponse(topics=topics, total_count=len(topics), categories=_unique_categories(topics))

	def search_topics(self, query: str) -> TopicsResponse:
		"""Keyword search across id, name, description, category and tags."""
		self._ensure_initialized()

		needle = query.strip().lower()
		if not needle:
			return self.get_available_topics()

		def matches(topic: DocumentationTopic) -> bool:
			fields = [topic.id, topic.name, topic.description, topic.category, *topic.tags]
			return any(needle in field.lower() for field in fields)

		topics = [t for t in self._topics if matches(t)]
		logger.debug(f"search_topics: query={query!r}, hits={len(topics)}")
		return TopicsResponse(topics=topics, total_count=len(topics), categories=_unique_categories(topics))

	def get_topic(self, topic_id: str) -> DocumentationTopic | None:
		self._ensure_initialized()
		return next((t for t in self._topics if t.id == topic_id), None)

	async def get_topic_content(self, topic_id: str) -> str | None:
		"""Read the llms.txt content for a topic.

		Returns:
		    File content, or None if the topic is unknown or unreadable
		"""
		topic = self.get_topic(topic_id)
		if topic is None:
			return None

		try:
			return await anyio.Path(topic.llm_file_path).read_text(encoding="utf-8")
		except OSError as e:
			logger.error(f"Failed to read content for topic {topic_id}: {e}")
			return None

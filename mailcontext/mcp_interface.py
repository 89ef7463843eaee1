"""
MCP Interface Layer using fastmcp for the product's routing and UI collaborators.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from mailcontext.models.core import Email
from mailcontext.services.aggregation import ContextAggregationService, build_services
from mailcontext.utils.config import config
from mailcontext.utils.errors import MailContextError, NotFoundError, ValidationError
from mailcontext.utils.health_check import get_system_info
from mailcontext.utils.logging_config import get_logger

logger = get_logger(__name__)


def _require(value: Optional[str], name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f'{name} is required')
    return str(value).strip()


def create_mcp(services: ContextAggregationService) -> FastMCP:
    """Register the collaborator-facing tools against an explicitly built service."""
    mcp = FastMCP('Mail Context')
    engine = services.engine

    @mcp.tool()
    def list_correlation_groups(owner_id: str) -> List[Dict[str, Any]]:
        """List the owner's correlation groups with members and analysis.

        Args:
            owner_id: Owner whose emails the groups touch
        """
        try:
            return [group.to_dict() for group in engine.list_groups(_require(owner_id, 'Owner ID'))]
        except MailContextError as e:
            logger.error(f'Error listing correlation groups: {e}')
            raise Exception(f'Listing correlation groups failed: {e}')

    @mcp.tool()
    def get_correlation_group(group_id: str) -> Dict[str, Any]:
        """Fetch one correlation group's members and analysis.

        Args:
            group_id: Group identifier
        """
        try:
            group = engine.get_group(_require(group_id, 'Group ID'))
            if group is None:
                raise NotFoundError(f'Correlation group {group_id} not found')
            return group.to_dict()
        except MailContextError as e:
            logger.error(f'Error fetching correlation group {group_id}: {e}')
            raise Exception(f'Fetching correlation group failed: {e}')

    @mcp.tool()
    def create_manual_correlation(email_ids: List[int], correlation_type: str, subject: str) -> str:
        """Group emails chosen by the user.

        Args:
            email_ids: At least two email ids
            correlation_type: quote, invoice, order, inquiry, response or manual
            subject: Label for the group

        Returns:
            The new group id
        """
        try:
            return engine.create_manual(email_ids, correlation_type, _require(subject, 'Subject'))
        except MailContextError as e:
            logger.error(f'Error creating manual correlation: {e}')
            raise Exception(f'Creating manual correlation failed: {e}')

    @mcp.tool()
    def search_memories(owner_id: str, query: str, limit: int = config.memory.search_default_limit) -> List[Dict[str, Any]]:
        """Semantic search over the owner's memories.

        Args:
            owner_id: Owner ID
            query: Natural language query
            limit: Maximum number of results to return

        Returns:
            Documents with their similarity score, best first
        """
        try:
            if not query or not query.strip():
                return []
            results = services.search(query, _require(owner_id, 'Owner ID'), limit)
            logger.debug(f'MCP search returned {len(results)} memories for owner {owner_id}')
            return [{'score': score, **document.to_dict(include_embedding=False)} for document, score in results]
        except MailContextError as e:
            logger.error(f'Memory search error: {e}')
            raise Exception(f'Memory search failed: {e}')

    @mcp.tool()
    def list_memories(owner_id: str) -> List[Dict[str, Any]]:
        """All of the owner's memories, newest first."""
        documents = services.memory_store.get_all(_require(owner_id, 'Owner ID'))
        return [document.to_dict(include_embedding=False) for document in documents]

    @mcp.tool()
    def add_note(owner_id: str, note_id: str, content: str) -> Dict[str, Any]:
        """Store a manual note as a searchable memory."""
        try:
            document = services.add_note(_require(note_id, 'Note ID'), _require(content, 'Content'),
                                         _require(owner_id, 'Owner ID'))
            return document.to_dict(include_embedding=False)
        except MailContextError as e:
            logger.error(f'Error adding note {note_id}: {e}')
            raise Exception(f'Adding note failed: {e}')

    @mcp.tool()
    def delete_memory(document_id: str) -> bool:
        """Delete one memory document by id, e.g. ``note-17``."""
        try:
            return services.memory_store.delete(_require(document_id, 'Document ID'))
        except MailContextError as e:
            logger.error(f'Error deleting memory {document_id}: {e}')
            raise Exception(f'Deleting memory failed: {e}')

    @mcp.tool()
    def reindex_memories(owner_id: str) -> int:
        """Re-embed every memory of the owner. Returns the number re-indexed."""
        try:
            return services.reindex(_require(owner_id, 'Owner ID'))
        except MailContextError as e:
            logger.error(f'Error reindexing memories for {owner_id}: {e}')
            raise Exception(f'Reindexing memories failed: {e}')

    @mcp.tool()
    def system_health() -> Dict[str, Any]:
        """Configuration summary and health of the providers and storage."""
        return get_system_info(config)

    @mcp.tool()
    def ingest_email(email: Dict[str, Any]) -> Dict[str, Any]:
        """Index a new email and detect its correlations.

        Args:
            email: id, owner_id, subject, body, sender, sender_email, date and optional category
        """
        try:
            parsed = Email.from_dict(email)
        except (KeyError, TypeError, ValueError) as e:
            raise Exception(f'Invalid email payload: {e}')

        result = services.ingest_email(parsed)
        return {
            'email_id': result.email_id,
            'indexed': result.indexed,
            'records': [record.to_dict() for record in result.records],
            'errors': result.errors,
        }

    return mcp


def main() -> None:
    services = build_services(config)
    mcp = create_mcp(services)
    mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)


if __name__ == '__main__':
    main()

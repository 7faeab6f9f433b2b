"""Supabase-backed tag repository."""

from dataclasses import dataclass

from postgrest.exceptions import APIError
from supabase import Client

from photo_library.domain.photos import Tag
from photo_library.services.tags import TagRepository

UNIQUE_VIOLATION = "23505"


@dataclass
class SupabaseTagRepository(TagRepository):
    """Supabase implementation for tag persistence."""

    client: Client

    def get_by_name(self, name: str) -> Tag | None:
        """Return a tag by its unique name, if present."""
        response = (
            self.client.table("tags")
            .select("id, name, description")
            .eq("name", name)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return parse_tag(response.data[0])

    def get_or_create(self, name: str, description: str | None = None) -> Tag:
        """Return the stored tag with this name, creating it when absent."""
        existing = self.get_by_name(name)
        if existing is not None:
            return existing
        try:
            response = (
                self.client.table("tags")
                .insert({"name": name, "description": description})
                .execute()
            )
        except APIError as exc:
            # Another request created it between the lookup and the insert.
            if exc.code == UNIQUE_VIOLATION:
                created = self.get_by_name(name)
                if created is not None:
                    return created
            raise
        if not response.data:
            raise RuntimeError(f"Failed to create tag '{name}'")
        return parse_tag(response.data[0])


def parse_tag(row: dict[str, object]) -> Tag:
    """Parse a tag row into a domain model."""
    description = row.get("description")
    return Tag(
        id=int(row["id"]),
        name=str(row.get("name", "")),
        description=str(description) if description is not None else None,
    )

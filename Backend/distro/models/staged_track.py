import uuid
import datetime
from sqlalchemy import String, Integer, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from distro.services.database import Base, JSONType


class StagedTrack(Base):
    """A track uploaded and validated but not yet registered in a release."""
    __tablename__ = "staged_tracks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Groups the tracks of one commit batch
    session_id: Mapped[str] = mapped_column(String, index=True)
    track_data: Mapped[dict] = mapped_column(JSONType)
    temp_file_path: Mapped[str | None] = mapped_column(String)
    sequence: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.datetime.now(datetime.timezone.utc), index=True
    )

    # Sent as Idempotency-Key when the track is registered upstream
    idempotency_key: Mapped[str] = mapped_column(String, default=lambda: uuid.uuid4().hex)

    # Registration progress, kept when a later track of the batch fails
    external_id: Mapped[int | None] = mapped_column(Integer)
    isrc: Mapped[str | None] = mapped_column(String)
    da_isrc: Mapped[str | None] = mapped_column(String)
    resource_url: Mapped[str | None] = mapped_column(String)
    resource_path: Mapped[str | None] = mapped_column(String)
    registered_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def is_registered(self) -> bool:
        return self.external_id is not None

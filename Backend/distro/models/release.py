from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from distro.services.database import Base, JSONType

class Release(Base):
    __tablename__ = "releases"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(Integer, unique=True, index=True, nullable=True)
    name = Column(String, nullable=False)
    catalogue_number = Column(String, nullable=False, default="")
    kind = Column(String, nullable=True)
    status = Column(String, nullable=False, default="offline")
    available = Column(Boolean, default=True, nullable=False)

    label = Column(Integer, nullable=True)
    label_name = Column(String, nullable=True)
    language = Column(String, nullable=True)
    release_version = Column(String, nullable=True)
    is_new_release = Column(Integer, nullable=True)
    publisher = Column(Integer, nullable=True)
    publisher_name = Column(String, nullable=True)
    publisher_year = Column(String, nullable=True)
    copyright_holder = Column(String, nullable=True)
    copyright_holder_year = Column(String, nullable=True)
    genre = Column(Integer, nullable=True)
    genre_name = Column(String, nullable=True)
    subgenre = Column(Integer, nullable=True)
    subgenre_name = Column(String, nullable=True)
    official_date = Column(String, nullable=True)
    original_date = Column(String, nullable=True)
    territory = Column(String, nullable=True)
    countries = Column(JSONType, default=list, nullable=False)
    ean = Column(String, nullable=True)

    # {full_size, thumb_medium, thumb_small} or {"path": ...} for uploaded artwork
    picture = Column(JSONType, nullable=True)
    # Embedded lists, never reassigned outside the track summary helpers
    artists = Column(JSONType, default=list, nullable=False)
    tracks = Column(JSONType, default=list, nullable=False)
    release_user_declaration = Column(JSONType, nullable=True)
    qc_feedback = Column(JSONType, nullable=True)

    # Bumped on every write to the embedded track list (compare-and-swap)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

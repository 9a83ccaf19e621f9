from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from distro.services.database import Base, JSONType

class Track(Base):
    __tablename__ = "tracks"

    id = Column(Integer, primary_key=True, index=True)
    # Identifier assigned by the distribution API on first registration
    external_id = Column(Integer, unique=True, index=True, nullable=False)
    # Foreign key to Release.external_id
    release = Column(Integer, index=True, nullable=True)
    order = Column(Integer, default=0, nullable=False)
    status = Column(String, default="Borrador", nullable=False)

    name = Column(String, nullable=False)
    mix_name = Column(String, nullable=True)
    language = Column(String, nullable=False, default="ES")
    vocals = Column(String, nullable=False, default="ZXX")

    ISRC = Column(String, nullable=True)
    DA_ISRC = Column(String, nullable=True)
    generate_isrc = Column(Boolean, default=False, nullable=False)

    genre = Column(Integer, default=0, nullable=False)
    genre_name = Column(String, default="", nullable=False)
    subgenre = Column(Integer, default=0, nullable=False)
    subgenre_name = Column(String, default="", nullable=False)

    # Ordered reference lists: {artist, kind, order, name}, {contributor, role, order, name, role_name},
    # {publisher, author, order, name}
    artists = Column(JSONType, default=list, nullable=False)
    contributors = Column(JSONType, default=list, nullable=False)
    publishers = Column(JSONType, default=list, nullable=False)

    label_share = Column(String, nullable=True)
    resource = Column(String, nullable=True)
    dolby_atmos_resource = Column(String, nullable=True)
    copyright_holder = Column(String, nullable=True)
    copyright_holder_year = Column(String, nullable=True)
    album_only = Column(Boolean, default=False, nullable=False)
    sample_start = Column(String, nullable=True)
    explicit_content = Column(Boolean, default=False, nullable=False)
    track_length = Column(String, default="00:00:00", nullable=True)
    qc_feedback = Column(JSONType, default=dict, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

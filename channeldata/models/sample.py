from sqlalchemy import BigInteger, Column, Float, Index, Integer

from channeldata.lib.database import Base


class Sample(Base):
  """Raw channel sample. Append-only ground truth for every query."""

  __tablename__ = 'samples'

  id = Column(Integer, primary_key=True, autoincrement=True)
  channel_id = Column(Integer, nullable=False)
  timestamp = Column(BigInteger, nullable=False)  # ms since epoch
  value = Column(Float, nullable=False)

  __table_args__ = (Index('ix_samples_channel_timestamp', 'channel_id', 'timestamp'),)

  def __repr__(self) -> str:
    return f'<Sample channel={self.channel_id} ts={self.timestamp} value={self.value}>'

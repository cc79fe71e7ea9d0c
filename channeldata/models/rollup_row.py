from sqlalchemy import BigInteger, Column, Float, Index, Integer, SmallInteger, UniqueConstraint

from channeldata.lib.database import Base


class RollupRow(Base):
  """Pre-aggregated reduction of all samples of one calendar bucket.

  `timestamp` is the MAX sample timestamp inside the bucket, not the bucket
  start, so rollup rows sort together with raw samples. `level` stores the
  AggregationLevel rank. Rows are written by the maintenance job only.
  """

  __tablename__ = 'rollups'

  id = Column(Integer, primary_key=True, autoincrement=True)
  channel_id = Column(Integer, nullable=False)
  level = Column(SmallInteger, nullable=False)
  timestamp = Column(BigInteger, nullable=False)
  value = Column(Float, nullable=False)
  count = Column(Integer, nullable=False)

  __table_args__ = (
    UniqueConstraint('channel_id', 'level', 'timestamp', name='uq_rollups_channel_level_timestamp'),
    Index('ix_rollups_channel_level', 'channel_id', 'level'),
  )

  def __repr__(self) -> str:
    return (
      f'<RollupRow channel={self.channel_id} level={self.level} ts={self.timestamp} '
      f'value={self.value} count={self.count}>'
    )

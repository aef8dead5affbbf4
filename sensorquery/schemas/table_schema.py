from pydantic import BaseModel, Field


class ColumnMapping(BaseModel):
    """Physical column names for time, value and the four hierarchy levels."""
    time_column: str = "timestamp"
    value_column: str = "valor"
    collector_id_column: str = "coletor_id"
    gateway_id_column: str = "gateway_id"
    equipment_id_column: str = "equipment_id"
    tag_id_column: str = "tag_id"
    
    def hierarchy_columns(self) -> dict[str, str]:
        """Physical column per hierarchy level, outermost first."""
        return {
            "collector_id": self.collector_id_column,
            "gateway_id": self.gateway_id_column,
            "equipment_id": self.equipment_id_column,
            "tag_id": self.tag_id_column,
        }


class TableSchema(BaseModel):
    """Relational table holding telemetry rows."""
    schema_name: str = "public"
    table_name: str = ""
    column_mapping: ColumnMapping = Field(default_factory=ColumnMapping)

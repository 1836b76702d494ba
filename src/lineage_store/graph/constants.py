from __future__ import annotations

from types import MappingProxyType

# Entity types
PROCESS = "Process"
PORT_ALIAS = "PortAlias"
PORT_IMPLEMENTATION = "PortImplementation"
TABULAR_SCHEMA_TYPE = "TabularSchemaType"
TABULAR_COLUMN_TYPE = "TabularColumnType"
TABULAR_COLUMN = "TabularColumn"
SCHEMA_ATTRIBUTE_TYPE = "SchemaAttributeType"
RELATIONAL_COLUMN = "RelationalColumn"
RELATIONAL_TABLE = "RelationalTable"
DERIVED_RELATIONAL_COLUMN = "DerivedRelationalColumn"
DERIVED_SCHEMA_ATTRIBUTE = "DerivedSchemaAttribute"
DEPLOYED_DB_SCHEMA_TYPE = "DeployedDatabaseSchema"
DATA_STORE = "DataStore"
DATA_FILE = "DataFile"
GLOSSARY_TERM = "GlossaryTerm"
GLOSSARY_CATEGORY = "GlossaryCategory"

# Relationship types
ATTRIBUTE_FOR_SCHEMA = "AttributeForSchema"
ASSET_SCHEMA_TYPE = "AssetSchemaType"
DATA_CONTENT_FOR_DATA_SET = "DataContentForDataSet"
NESTED_FILE = "NestedFile"
SEMANTIC_ASSIGNMENT = "SemanticAssignment"
TERM_CATEGORIZATION = "TermCategorization"
PORT_DELEGATION = "PortDelegation"
PROCESS_PORT = "ProcessPort"
LINEAGE_MAPPING = "LineageMapping"
PORT_SCHEMA = "PortSchema"

# Property names
DISPLAY_NAME = "displayName"
QUALIFIED_NAME = "qualifiedName"
NAME = "name"

# Entity type -> relationship type produced when that entity appears in a process event.
PROCESS_RELATIONSHIP_TYPES: MappingProxyType[str, str] = MappingProxyType(
    {
        PORT_ALIAS: PORT_DELEGATION,
        PORT_IMPLEMENTATION: PORT_SCHEMA,
        TABULAR_SCHEMA_TYPE: ATTRIBUTE_FOR_SCHEMA,
        SCHEMA_ATTRIBUTE_TYPE: SCHEMA_ATTRIBUTE_TYPE,
        TABULAR_COLUMN_TYPE: LINEAGE_MAPPING,
    }
)

LINEAGE_EDGE_LABELS = frozenset({LINEAGE_MAPPING, PORT_DELEGATION, PORT_SCHEMA, PROCESS_PORT})
GLOSSARY_EDGE_LABELS = frozenset({SEMANTIC_ASSIGNMENT, TERM_CATEGORIZATION})
# container -> contained
CONTAINMENT_EDGE_LABELS = frozenset(
    {ATTRIBUTE_FOR_SCHEMA, ASSET_SCHEMA_TYPE, NESTED_FILE, DATA_CONTENT_FOR_DATA_SET}
)

# Granularity rank per entity type, matched case-insensitively. Lower is coarser.
HOST_RANK = 0
TABLE_RANK = 1
COLUMN_RANK = 2

GRANULARITY: MappingProxyType[str, int] = MappingProxyType(
    {
        "host": HOST_RANK,
        "datastore": HOST_RANK,
        "database": HOST_RANK,
        "softwareserver": HOST_RANK,
        DEPLOYED_DB_SCHEMA_TYPE.lower(): HOST_RANK,
        "table": TABLE_RANK,
        RELATIONAL_TABLE.lower(): TABLE_RANK,
        TABULAR_SCHEMA_TYPE.lower(): TABLE_RANK,
        DATA_FILE.lower(): TABLE_RANK,
        "column": COLUMN_RANK,
        RELATIONAL_COLUMN.lower(): COLUMN_RANK,
        TABULAR_COLUMN.lower(): COLUMN_RANK,
        TABULAR_COLUMN_TYPE.lower(): COLUMN_RANK,
        DERIVED_RELATIONAL_COLUMN.lower(): COLUMN_RANK,
        DERIVED_SCHEMA_ATTRIBUTE.lower(): COLUMN_RANK,
    }
)

"""Declarative schema descriptors and descriptor discovery.

Usage:
    from db_importer.descriptors import TableDescriptor, ColumnSpec, load_descriptors
"""

from db_importer.descriptors.loader import (
    BaseDescriptorModule,
    DescriptorModule,
    DescriptorRegistry,
    load_descriptors,
)
from db_importer.descriptors.models import (
    ColumnSpec,
    DescriptorBundle,
    ForeignKeySpec,
    IndexSpec,
    PrimaryKeySpec,
    SeedDataBlock,
    TableDescriptor,
)

__all__ = [
    "BaseDescriptorModule",
    "DescriptorModule",
    "DescriptorRegistry",
    "load_descriptors",
    "ColumnSpec",
    "DescriptorBundle",
    "ForeignKeySpec",
    "IndexSpec",
    "PrimaryKeySpec",
    "SeedDataBlock",
    "TableDescriptor",
]

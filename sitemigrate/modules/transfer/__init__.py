"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Transfer Module
"""

from .index import StagingArea, TransferStager

__all__ = ['StagingArea', 'TransferStager']

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

import pytest

from riskreport_cli.storage.memory import InMemoryRepository

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def sample_records() -> Dict[str, Any]:
    """One organization, a ten-control catalogue, one assessed and one empty
    assessment, one populated and one empty threat model."""
    codes = [
        ("ID.AM-1", "Physical devices inventoried"),
        ("ID.AM-2", "Software platforms inventoried"),
        ("PR.AC-1", "Identities and credentials managed"),
        ("PR.AC-2", "Physical access managed"),
        ("DE.CM-1", "Network monitored"),
        ("DE.CM-2", "Physical environment monitored"),
        ("RS.RP-1", "Response plan executed"),
        ("RS.CO-1", "Personnel know their roles"),
        ("RC.RP-1", "Recovery plan executed"),
        ("RC.IM-1", "Recovery plans incorporate lessons learned"),
    ]
    return {
        "organizations": [{"id": 1, "name": "Acme Corp"}],
        "controls": [
            {
                "id": index,
                "control_code": code,
                "control_name": name,
                "description": f"{name} per policy",
                "category_name": code.split("-")[0],
            }
            for index, (code, name) in enumerate(codes, start=1)
        ],
        "assessments": [
            {"id": 1, "assessment_name": "Q2 Assessment", "organization_id": 1,
             "assessment_status": "in_progress"},
            {"id": 2, "assessment_name": "Empty Assessment", "organization_id": 1},
        ],
        "control_assessments": [
            {"assessment_id": 1, "control_id": 1, "implementation_status": "fully_implemented",
             "maturity_level": "defined", "compliance_score": 90, "evidence_count": 2,
             "updated_at": "2024-06-01T10:00:00Z"},
            {"assessment_id": 1, "control_id": 3, "implementation_status": "largely_implemented",
             "compliance_score": 70, "updated_at": "2024-06-02T10:00:00Z"},
            {"assessment_id": 1, "control_id": 5, "implementation_status": "partially_implemented",
             "compliance_score": 50, "updated_at": "2024-06-03T10:00:00Z"},
            {"assessment_id": 1, "control_id": 7, "implementation_status": "not_implemented",
             "compliance_score": 10, "notes": "No response plan yet",
             "updated_at": "2024-06-04T10:00:00Z"},
        ],
        "threat_models": [
            {"id": 1, "model_name": "Payments API", "system_name": "payments", "organization_id": 1},
            {"id": 2, "model_name": "Empty Model", "organization_id": 1},
        ],
        "assets": [
            {"id": 1, "threat_model_id": 1, "asset_name": "Card Database",
             "asset_type": "data_store", "criticality": "high"},
            {"id": 2, "threat_model_id": 1, "asset_name": "API Gateway",
             "asset_type": "service", "criticality": "medium"},
            {"id": 3, "threat_model_id": 1, "asset_name": "Admin Console",
             "asset_type": "service", "criticality": "low"},
        ],
        "threats": [
            {"id": 1, "threat_model_id": 1, "asset_id": 1, "stride_code": "S",
             "threat_title": "Stolen operator credentials", "likelihood": "very_high",
             "impact": "very_high", "status": "identified",
             "identified_at": "2024-05-01T09:00:00Z"},
            {"id": 2, "threat_model_id": 1, "asset_id": 1, "stride_code": "T",
             "threat_title": "Tampered settlement files", "likelihood": "high",
             "impact": "high", "status": "mitigating",
             "identified_at": "2024-05-02T09:00:00Z"},
            {"id": 3, "threat_model_id": 1, "asset_id": 2, "stride_code": "I",
             "threat_title": "Verbose error messages", "likelihood": "very_low",
             "impact": "very_low", "status": "mitigated",
             "identified_at": "2024-05-03T09:00:00Z"},
        ],
        "mitigations": [
            {"id": 1, "threat_id": 2, "mitigation_strategy": "reduce",
             "mitigation_description": "Sign settlement files", "implementation_status": "in_progress",
             "priority": "high", "effectiveness_rating": "high", "implementation_date": "2024-06-01"},
            {"id": 2, "threat_id": 3, "mitigation_strategy": "eliminate",
             "mitigation_description": "Generic error pages", "implementation_status": "verified",
             "priority": "low", "effectiveness_rating": "excellent"},
        ],
        "risk_register": [],
    }


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository.from_records(sample_records())

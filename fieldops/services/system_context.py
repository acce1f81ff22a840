"""
Prompt material for the generative-AI boundary: audit instructions, the map
bill-of-quantities brief, response schemas and the chat knowledge base.
"""
import json

from ..models import UnitRates

AUDIT_SYSTEM_INSTRUCTION = """
You are an AI specialist in auditing fiber-optic network construction (FTTH/Backbone).
Your job is to analyse field photos, identify components (poles, cables, splice
enclosures, snowshoes) and workmanship errors (low wires, missing slack loops,
missing tags, disorder).
Always answer with structured JSON.
"""

AUDIT_USER_PROMPT = (
    "Analyse this fiber-optic construction photo. Identify installed items (poles, strand, "
    "enclosures, slack loops). Check for defects (wrong tension, missing snowshoe, disorder). "
    "Provide a compliance status and score."
)

AUDIT_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "complianceScore": {"type": "number", "description": "Installation quality score from 0 to 100"},
        "status": {"type": "string", "enum": ["COMPLIANT", "DIVERGENT", "CRITICAL"]},
        "detectedItems": {"type": "array", "items": {"type": "string"}},
        "issues": {"type": "array", "items": {"type": "string"}},
        "aiSummary": {"type": "string", "description": "Short technical summary of the analysis"},
    },
    "required": ["complianceScore", "status", "detectedItems", "issues", "aiSummary"],
}

MAP_USER_PROMPT = (
    "Run the full OSP audit. Count Snowshoes, Anchors, Risers and Coils. Measure cable footage. "
    "Produce the warehouse pick list. Compute the labor cost with the rates provided."
)

MAP_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "totalCableLength": {"type": "number", "description": "Sum of every detected span, in feet"},
        "cableType": {"type": "string", "description": "Predominant fiber count (e.g. 48ct, 96ct, 288ct)"},
        "spanCount": {"type": "number", "description": "Number of spans counted"},
        "equipmentCounts": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Snowshoe, Anchor, Coil, Riser, Splice Case"},
                    "quantity": {"type": "number"},
                },
            },
        },
        "financials": {
            "type": "object",
            "properties": {
                "estimatedLaborCost": {"type": "number", "description": "(footage * rate) + (assets * rate)"},
                "estimatedMaterialCost": {"type": "number"},
                "potentialSavings": {"type": "number"},
            },
        },
        "materialList": {
            "type": "array",
            "description": "Exact list of materials for warehouse pickup",
            "items": {
                "type": "object",
                "properties": {
                    "item": {"type": "string"},
                    "quantity": {"type": "number"},
                    "unit": {"type": "string"},
                },
            },
        },
        "detectedAnomalies": {"type": "array", "items": {"type": "string"}},
        "spliceRecommendation": {
            "type": "object",
            "properties": {
                "location": {"type": "string"},
                "reason": {"type": "string"},
                "action": {"type": "string"},
            },
        },
    },
}

CHAT_SYSTEM_INSTRUCTION = """You are an expert Field Solutions AI assistant for fiber-optic construction crews.
Help supervisors, owners and linemen with installation practice, route planning and the console's workflows.
If the user asks for complex reasoning, think it through step by step before answering.

**Console workflows:**
- Linemen submit daily work (route ID, footage, snowshoes, anchors, coils, risers). The amount is priced
  at the contract unit rates in force at submission time.
- Supervisors record the QC outcome (PASSED/FAILED) and approve submissions.
- Owners pay APPROVED invoices. A 0.69% transaction fee is deducted from each payout.
  Invoices that failed QC are never paid.
- Owners maintain the unit rates (strand, fiber, overlash per foot; anchor, snowshoe, composite, riser per unit).
"""


def map_system_instruction(rates: UnitRates = None) -> str:
    rate_block = json.dumps(rates.model_dump(), indent=2) if rates else "Use standard US averages."
    return f"""
You are a Senior OSP and Geospatial (GIS) Engineering specialist.
Your mission is to analyse fiber-optic designs from maps (image/PDF) or Google Earth files (KML/XML).

MANDATORY CONTRACT PRICE TABLE (UNIT RATES):
Use EXACTLY these values to compute 'estimatedLaborCost':
{rate_block}

FINANCIAL CALCULATION:
1. Multiply total cable footage (Strand/Fiber) by the 'strand' or 'fiber' rate.
2. Multiply asset counts (Anchors, Snowshoes, etc.) by their unit rates.
3. Sum everything into 'estimatedLaborCost'.

GOALS:
1. **Accurate counts:** count Snowshoes, Anchors, Risers and Coils.
2. **Warehouse pick list:** produce a clear material list for the lineman (e.g. "5000ft Fiber", "12 Anchors").
3. **Technical analysis:** identify anomalies or splice optimisation opportunities.

Respond with JSON matching this schema:
{json.dumps(MAP_RESPONSE_SCHEMA)}
"""


def audit_system_instruction() -> str:
    return f"{AUDIT_SYSTEM_INSTRUCTION}\nRespond with JSON matching this schema:\n{json.dumps(AUDIT_RESPONSE_SCHEMA)}\n"

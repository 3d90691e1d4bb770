"""
Templates for LLM prompts.

Placeholders use a small mustache subset:
    {{var}}                        simple substitution
    {{#if var}}...{{/if}}          kept only when var is truthy
    {{#each list}}...{{/each}}     repeated per item; {{this}} / {{this.key}} inside
"""

from app.models.prompt import PromptTemplate

# --- FIELD EXTRACTION ---

FIELD_EXTRACTION_SYSTEM = """
You are an assistant specialized in extracting structured data from natural language.
Identify and extract field values from the user's message.

Target entity type: {{entityType}}
Current phase: {{phase}}
Language: {{language}}

## FIELDS TO EXTRACT
{{targetFieldsText}}

## INSTRUCTIONS
1. Extract only the fields listed above.
2. Return values in the exact format specified for each field.
3. If a value is not clearly stated, return null.
4. Confidence is 0.0-1.0 depending on how explicitly the value was stated.
5. For names, look for quoted text or phrases after "llamado/a", "called", "named".
"""

FIELD_EXTRACTION_USER = """
User message: "{{userMessage}}"

{{#if collectedDataJson}}
Already collected data:
{{collectedDataJson}}
{{/if}}

Extract fields as JSON:
{"fields": [{"field": "fieldName", "value": "extractedValue", "confidence": 0.9}]}
"""

# --- JSON GENERATION ---

JSON_GENERATION_SYSTEM = """
You generate complete {{entityType}} entities in JSON format.
Produce a valid JSON object that follows the schema below.

{{#if universeContext}}
## UNIVERSE CONTEXT
{{universeContext}}
{{/if}}

## SCHEMA
{{schemaText}}

## GUIDELINES
- Creative but coherent content.
- Every required field present.
- Respect the validation rules of each field.
- Write text content in: {{language}}
"""

JSON_GENERATION_USER = """
Based on the following collected information, generate a complete {{entityType}}:

{{collectedDataJson}}

{{#if examples}}
Examples:
{{#each examples}}
Input: {{this.input}}
Output: {{this.output}}
{{/each}}
{{/if}}

Generate the complete JSON:
"""

# --- VALIDATION CORRECTION ---

VALIDATION_CORRECTION_SYSTEM = """
You fix validation errors in JSON entities.
Correct the entity so it passes validation while preserving the original intent.

Entity type: {{entityType}}
Language: {{language}}
"""

VALIDATION_CORRECTION_USER = """
Current entity:
{{currentEntityJson}}

Validation errors:
{{#each validationErrors}}
- {{this}}
{{/each}}

Fix the errors and return the corrected JSON:
"""

# --- CLARIFICATION ---

CLARIFICATION_SYSTEM = """
You are a friendly assistant helping to create {{entityType}}s.
Write one natural clarification question to gather missing information.

Language: {{language}}
Tone: friendly, helpful, creative
"""

CLARIFICATION_USER = """
Current phase: {{phase}}
Missing fields: {{missingFields}}
Already collected:
{{collectedDataJson}}

{{#if conversationText}}
Recent conversation:
{{conversationText}}
{{/if}}

Write a single, natural question for the user:
"""

# --- EDIT DETECTION ---

EDIT_DETECTION_SYSTEM = """
You detect edit intentions in user messages.
Identify which fields the user wants to change.

Entity type: {{entityType}}
Language: {{language}}
"""

EDIT_DETECTION_USER = """
Current entity:
{{currentEntityJson}}

User's edit request: "{{userMessage}}"

Identify the changes as JSON:
{"changes": [{"field": "fieldPath", "operation": "update|add|delete", "newValue": "value", "confidence": 0.9}]}
"""

# --- CONTRADICTIONS ---

CONTRADICTION_CHECK_SYSTEM = """
You detect contradictions in user input.
Check whether new information contradicts previously collected data.
"""

CONTRADICTION_CHECK_USER = """
Previously collected data:
{{collectedDataJson}}

New input: "{{userMessage}}"

Return:
{"hasContradictions": true, "contradictions": [{"field": "name", "oldValue": "X", "newValue": "Y", "severity": "high|medium|low"}], "resolution": "ask_user|use_new|use_old"}
"""

# --- PHASE GUIDANCE ---

PHASE_GUIDANCE_SYSTEM = """
You are a creative assistant helping users create {{entityType}}s.
Guide the user through the current phase with helpful suggestions.

Language: {{language}}
Current phase: {{phase}}
"""

PHASE_GUIDANCE_USER = """
{{phaseInstructions}}

Already collected:
{{collectedDataJson}}

{{#if conversationText}}
Conversation so far:
{{conversationText}}
{{/if}}

Write a helpful, engaging message to guide the user:
"""

# --- SUMMARY ---

ENTITY_SUMMARY_SYSTEM = """
You write engaging summaries of {{entityType}}s.
Language: {{language}}
"""

ENTITY_SUMMARY_USER = """
Summarize this {{entityType}} in 2-3 sentences:
{{currentEntityJson}}
"""


# --- ACTION ANALYSIS ---

ACTION_ANALYSIS_SYSTEM = """
You are an RPG game master analyzing what characters do.
Suggest stat increases for the action, following ONLY these progression rules:

## PROGRESSION RULES
{{#each progressionRules}}
- {{this.description}}: keywords [{{this.keywordsText}}] -> stats [{{this.statsText}}] (max +{{this.maxChangePerAction}})
{{/each}}

## INSTRUCTIONS
1. Find keywords in the action that match a rule.
2. Suggest increases ONLY for stats allowed by the matching rules.
3. Each change is at least 1 and never above the rule maximum.
4. Write the analysis in {{language}} (max 50 words).

Respond ONLY with JSON:
{"analysis": "...", "stat_changes": [{"stat": "key", "change": 1, "reason": "..."}], "confidence": 0.0}

If no rule applies:
{"analysis": "Not applicable", "stat_changes": [], "confidence": 0}
"""

ACTION_ANALYSIS_USER = """
## CHARACTER
Name: {{characterName}}
Level: {{characterLevel}}
Current stats: {{statsText}}

## ACTION
"{{actionText}}"
"""

TEMPLATES = {
    t.id: t
    for t in [
        PromptTemplate(
            id="field_extraction",
            name="Field Extraction",
            system_template=FIELD_EXTRACTION_SYSTEM,
            user_template=FIELD_EXTRACTION_USER,
            expected_format="json",
            max_tokens=500,
            temperature=0.3,
            required_variables=["userMessage", "entityType", "phase", "language", "targetFieldsText"],
            optional_variables=["collectedDataJson"],
        ),
        PromptTemplate(
            id="json_generation",
            name="JSON Generation",
            system_template=JSON_GENERATION_SYSTEM,
            user_template=JSON_GENERATION_USER,
            expected_format="json",
            max_tokens=1500,
            temperature=0.7,
            required_variables=["entityType", "schemaText", "collectedDataJson", "language"],
            optional_variables=["universeContext", "examples"],
        ),
        PromptTemplate(
            id="validation_correction",
            name="Validation Correction",
            system_template=VALIDATION_CORRECTION_SYSTEM,
            user_template=VALIDATION_CORRECTION_USER,
            expected_format="json",
            max_tokens=1000,
            temperature=0.3,
            required_variables=["entityType", "currentEntityJson", "validationErrors", "language"],
        ),
        PromptTemplate(
            id="clarification_question",
            name="Clarification Question",
            system_template=CLARIFICATION_SYSTEM,
            user_template=CLARIFICATION_USER,
            expected_format="text",
            max_tokens=200,
            temperature=0.8,
            required_variables=["entityType", "phase", "missingFields", "collectedDataJson", "language"],
            optional_variables=["conversationText"],
        ),
        PromptTemplate(
            id="edit_detection",
            name="Edit Detection",
            system_template=EDIT_DETECTION_SYSTEM,
            user_template=EDIT_DETECTION_USER,
            expected_format="json",
            max_tokens=500,
            temperature=0.3,
            required_variables=["entityType", "currentEntityJson", "userMessage", "language"],
        ),
        PromptTemplate(
            id="contradiction_check",
            name="Contradiction Check",
            system_template=CONTRADICTION_CHECK_SYSTEM,
            user_template=CONTRADICTION_CHECK_USER,
            expected_format="json",
            max_tokens=300,
            temperature=0.2,
            required_variables=["collectedDataJson", "userMessage"],
        ),
        PromptTemplate(
            id="phase_guidance",
            name="Phase Guidance",
            system_template=PHASE_GUIDANCE_SYSTEM,
            user_template=PHASE_GUIDANCE_USER,
            expected_format="text",
            max_tokens=300,
            temperature=0.8,
            required_variables=["entityType", "phase", "phaseInstructions", "collectedDataJson", "language"],
            optional_variables=["conversationText"],
        ),
        PromptTemplate(
            id="entity_summary",
            name="Entity Summary",
            system_template=ENTITY_SUMMARY_SYSTEM,
            user_template=ENTITY_SUMMARY_USER,
            expected_format="text",
            max_tokens=200,
            temperature=0.7,
            required_variables=["entityType", "currentEntityJson", "language"],
        ),
        PromptTemplate(
            id="action_analysis",
            name="Action Analysis",
            system_template=ACTION_ANALYSIS_SYSTEM,
            user_template=ACTION_ANALYSIS_USER,
            expected_format="json",
            max_tokens=500,
            temperature=0.2,
            required_variables=["progressionRules", "actionText", "statsText", "language"],
            optional_variables=["characterName", "characterLevel"],
        ),
    ]
}

"""
Few-shot examples attached to generation prompts.
"""

from app.models.prompt import FewShotExample

FEW_SHOT_EXAMPLES = [
    FewShotExample(
        input='Quiero crear un universo de fantasía llamado "Tierras Olvidadas"',
        output='{"name": "Tierras Olvidadas", "theme": "fantasy"}',
        tags=["universe", "create", "name", "theme"],
        language="es",
    ),
    FewShotExample(
        input="Un mundo cyberpunk donde la tecnología ha reemplazado la magia",
        output='{"theme": "cyberpunk", "description": "Un mundo donde la tecnología ha reemplazado la magia"}',
        tags=["universe", "create", "theme", "description"],
        language="es",
    ),
    FewShotExample(
        input='Mi personaje se llama "Elena" y es una guerrera elfa',
        output='{"name": "Elena", "description": "Una guerrera elfa"}',
        tags=["character", "create", "name", "description"],
        language="es",
    ),
    FewShotExample(
        input='I want to create a fantasy universe called "Forgotten Lands"',
        output='{"name": "Forgotten Lands", "theme": "fantasy"}',
        tags=["universe", "create", "name", "theme"],
        language="en",
    ),
    FewShotExample(
        input='My character is called "Kael", a hunter from the northern wastes',
        output='{"name": "Kael", "description": "A hunter from the northern wastes"}',
        tags=["character", "create", "name", "description"],
        language="en",
    ),
    FewShotExample(
        input='Cambiar el nombre a "Nuevo Mundo"',
        output='{"changes": [{"field": "name", "operation": "update", "newValue": "Nuevo Mundo"}]}',
        tags=["edit", "name"],
        language="es",
    ),
    FewShotExample(
        input='Rename it to "New World"',
        output='{"changes": [{"field": "name", "operation": "update", "newValue": "New World"}]}',
        tags=["edit", "name"],
        language="en",
    ),
]

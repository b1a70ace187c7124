"""
Built-in blocks for Living Canvas.

These manifests and logic sources are written to the block library the first
time it is created. After that the files on disk are the source of truth and
may be edited freely by the user.
"""

from typing import Any, Dict, List

BUILTIN_AUTHOR = "Living Canvas Team"


SUMMARIZER_EXECUTOR = '''
def execute(input_text, config, capabilities):
    prompt = config.get("systemPrompt", "Summarize the following text.")
    prompt = prompt + "\\n\\nTone: " + str(config.get("tone", "concise"))
    prompt = prompt + "\\nFormat: " + str(config.get("outputFormat", "bullet"))
    if config.get("maxLength"):
        prompt = prompt + "\\nMaximum length: " + str(config.get("maxLength")) + " words"
    if config.get("citeReferences"):
        prompt = prompt + "\\nInclude references and citations where appropriate"
    return prompt + "\\n\\nText to summarize:\\n\\n" + input_text
'''

QUIZZER_EXECUTOR = '''
def execute(input_text, config, capabilities):
    count = str(config.get("numQuestions", 5))
    difficulty = str(config.get("difficulty", "medium"))
    question_type = str(config.get("questionType", "multiple"))
    return (
        "Generate " + count + " " + difficulty + " " + question_type
        + " questions based on the following content:\\n\\n" + input_text
        + "\\n\\nFormat the questions clearly with answers."
    )
'''

GRADER_EXECUTOR = '''
SYSTEM_PROMPT = "You are an expert educator who provides fair, constructive feedback on written work."


def execute(input_text, config, capabilities):
    criteria = config.get("gradingCriteria") or "clarity, accuracy, completeness, organization"
    user_prompt = "Please evaluate the following text using these criteria: " + criteria
    user_prompt = user_prompt + "\\n\\nGrading scale: " + str(config.get("gradeScale", "100"))
    if config.get("includeSuggestions"):
        user_prompt = user_prompt + "\\nInclude specific suggestions for improvement."
    user_prompt = user_prompt + "\\n\\nText to evaluate:\\n" + input_text
    user_prompt = user_prompt + (
        "\\n\\nProvide your evaluation in this format:\\n"
        "**Overall Score: [score]**\\n\\n"
        "**Strengths:**\\n- [strength]\\n\\n"
        "**Areas for Improvement:**\\n- [improvement]\\n\\n"
        "**Detailed Feedback:**\\n[analysis and suggestions]"
    )
    capabilities.log("grading " + str(len(input_text)) + " characters")
    return capabilities.complete(SYSTEM_PROMPT, user_prompt)
'''

TRANSLATOR_EXECUTOR = '''
def execute(input_text, config, capabilities):
    prompt = "Translate the following text to " + str(config.get("targetLanguage", "Spanish")) + "."
    if config.get("preserveFormatting"):
        prompt = prompt + " Preserve the original formatting, including line breaks, bullet points, and emphasis."
    return prompt + "\\n\\nText to translate:\\n\\n" + input_text
'''

CUSTOM_PROMPT_EXECUTOR = '''
def execute(input_text, config, capabilities):
    template = config.get("customPrompt") or "Summarize the following text for me: {{input}}"
    if config.get("savePrompt") and config.get("promptName"):
        capabilities.save_prompt(config.get("promptName"), template)
    if "{{input}}" in template:
        return template.replace("{{input}}", input_text)
    return template + "\\n\\n" + input_text
'''

CONCEPT_EXPLAINER_EXECUTOR = '''
def execute(input_text, config, capabilities):
    prompt = "Explain the following concept for a " + str(config.get("audienceLevel", "beginner")) + " audience."
    if config.get("stepByStep"):
        prompt = prompt + " Break it down into clear, step-by-step explanations."
    if config.get("useAnalogies"):
        prompt = prompt + " Use analogies and real-world comparisons to make it easier to understand."
    if config.get("includeVisuals"):
        prompt = prompt + " Suggest visual aids, diagrams, or examples that would help illustrate the concept."
    return prompt + "\\n\\nConcept to explain:\\n\\n" + input_text
'''

STUDY_BUDDY_EXECUTOR = '''
def execute(input_text, config, capabilities):
    study_format = str(config.get("studyFormat", "a study guide"))
    learning_style = str(config.get("learningStyle", "visual learner"))
    prompt = "Create " + study_format + " optimized for a " + learning_style + " from the following content."
    if config.get("timeAvailable"):
        prompt = prompt + " Design for " + str(config.get("timeAvailable")) + " minutes of study time."
    if config.get("includeExamples"):
        prompt = prompt + " Include practical examples and real-world applications."
    return prompt + "\\n\\nContent to process:\\n\\n" + input_text
'''


BUILTIN_BLOCKS: List[Dict[str, Any]] = [
    {
        "manifest": {
            "id": "core/summarizer",
            "name": "Text Summarizer",
            "description": "Summarizes long text into concise bullet points or paragraphs",
            "author": BUILTIN_AUTHOR,
            "version": "1.0.0",
            "category": "core",
            "settings": [
                {
                    "name": "systemPrompt",
                    "description": "System prompt for the AI",
                    "type": "textarea",
                    "required": True,
                    "default": "You are a helpful academic assistant. Summarize the following text."
                },
                {
                    "name": "tone",
                    "description": "Tone of the summary",
                    "type": "dropdown",
                    "required": True,
                    "default": "concise",
                    "options": {
                        "concise": "Concise",
                        "academic": "Academic",
                        "casual": "Casual",
                        "technical": "Technical"
                    }
                },
                {
                    "name": "outputFormat",
                    "description": "Format of the output",
                    "type": "dropdown",
                    "required": True,
                    "default": "bullet",
                    "options": {
                        "bullet": "Bullet Points",
                        "paragraph": "Paragraph",
                        "numbered": "Numbered List"
                    }
                },
                {
                    "name": "maxLength",
                    "description": "Maximum length of summary (words)",
                    "type": "number",
                    "required": False,
                    "default": 200
                },
                {
                    "name": "citeReferences",
                    "description": "Include references and citations",
                    "type": "boolean",
                    "required": False,
                    "default": False
                }
            ]
        },
        "executor": SUMMARIZER_EXECUTOR
    },
    {
        "manifest": {
            "id": "core/quizzer",
            "name": "Quiz Generator",
            "description": "Generates quiz questions from educational content",
            "author": BUILTIN_AUTHOR,
            "version": "1.0.0",
            "category": "core",
            "settings": [
                {
                    "name": "questionType",
                    "description": "Type of questions to generate",
                    "type": "dropdown",
                    "required": True,
                    "default": "multiple",
                    "options": {
                        "multiple": "Multiple Choice",
                        "truefalse": "True/False",
                        "short": "Short Answer",
                        "mixed": "Mixed Types"
                    }
                },
                {
                    "name": "numQuestions",
                    "description": "Number of questions to generate",
                    "type": "number",
                    "required": True,
                    "default": 5
                },
                {
                    "name": "difficulty",
                    "description": "Difficulty level",
                    "type": "dropdown",
                    "required": True,
                    "default": "medium",
                    "options": {
                        "easy": "Easy",
                        "medium": "Medium",
                        "hard": "Hard"
                    }
                }
            ]
        },
        "executor": QUIZZER_EXECUTOR
    },
    {
        "manifest": {
            "id": "core/grader",
            "name": "AI Grader",
            "description": "Grades essays, assignments, or answers with detailed feedback",
            "author": BUILTIN_AUTHOR,
            "version": "1.0.0",
            "category": "core",
            "settings": [
                {
                    "name": "gradingCriteria",
                    "description": "Specific criteria to evaluate",
                    "type": "textarea",
                    "required": True,
                    "default": "Clarity, accuracy, completeness, and organization"
                },
                {
                    "name": "gradeScale",
                    "description": "Grading scale",
                    "type": "dropdown",
                    "required": True,
                    "default": "100",
                    "options": {
                        "100": "0-100 points",
                        "letter": "A-F letter grades",
                        "rubric": "Detailed rubric"
                    }
                },
                {
                    "name": "includeSuggestions",
                    "description": "Include improvement suggestions",
                    "type": "boolean",
                    "required": False,
                    "default": True
                }
            ]
        },
        "executor": GRADER_EXECUTOR
    },
    {
        "manifest": {
            "id": "core/translator",
            "name": "Translator",
            "description": "Translates text between different languages",
            "author": BUILTIN_AUTHOR,
            "version": "1.0.0",
            "category": "core",
            "settings": [
                {
                    "name": "targetLanguage",
                    "description": "Target language",
                    "type": "dropdown",
                    "required": True,
                    "default": "Spanish",
                    "options": {
                        language: language
                        for language in (
                            "Spanish", "French", "German", "Italian", "Portuguese",
                            "Chinese", "Japanese", "Korean", "Arabic", "Russian"
                        )
                    }
                },
                {
                    "name": "preserveFormatting",
                    "description": "Preserve original formatting",
                    "type": "boolean",
                    "required": False,
                    "default": True
                }
            ]
        },
        "executor": TRANSLATOR_EXECUTOR
    },
    {
        "manifest": {
            "id": "core/custom-prompt",
            "name": "Custom Prompt",
            "description": "Sends your own prompt template, with {{input}} replaced by the connected text",
            "author": BUILTIN_AUTHOR,
            "version": "1.0.0",
            "category": "core",
            "settings": [
                {
                    "name": "customPrompt",
                    "description": "Prompt template; {{input}} is replaced by the input text",
                    "type": "textarea",
                    "required": True,
                    "default": "Summarize the following text for me: {{input}}"
                },
                {
                    "name": "savePrompt",
                    "description": "Save this prompt for later reuse",
                    "type": "boolean",
                    "required": False,
                    "default": False
                },
                {
                    "name": "promptName",
                    "description": "Name to save the prompt under",
                    "type": "text",
                    "required": False,
                    "default": ""
                }
            ]
        },
        "executor": CUSTOM_PROMPT_EXECUTOR
    },
    {
        "manifest": {
            "id": "core/concept-explainer",
            "name": "Concept Explainer",
            "description": "Explains a concept at the level of the chosen audience",
            "author": BUILTIN_AUTHOR,
            "version": "1.0.0",
            "category": "core",
            "settings": [
                {
                    "name": "audienceLevel",
                    "description": "Who the explanation is for",
                    "type": "dropdown",
                    "required": True,
                    "default": "beginner",
                    "options": {
                        "child": "Child",
                        "beginner": "Beginner",
                        "intermediate": "Intermediate",
                        "expert": "Expert"
                    }
                },
                {
                    "name": "useAnalogies",
                    "description": "Use analogies and real-world comparisons",
                    "type": "boolean",
                    "required": False,
                    "default": True
                },
                {
                    "name": "includeVisuals",
                    "description": "Suggest visual aids and diagrams",
                    "type": "boolean",
                    "required": False,
                    "default": False
                },
                {
                    "name": "stepByStep",
                    "description": "Break the explanation into steps",
                    "type": "boolean",
                    "required": False,
                    "default": True
                }
            ]
        },
        "executor": CONCEPT_EXPLAINER_EXECUTOR
    },
    {
        "manifest": {
            "id": "core/study-buddy",
            "name": "Study Buddy",
            "description": "Turns content into study material for your learning style",
            "author": BUILTIN_AUTHOR,
            "version": "1.0.0",
            "category": "core",
            "settings": [
                {
                    "name": "studyFormat",
                    "description": "Kind of study material to create",
                    "type": "dropdown",
                    "required": True,
                    "default": "a study guide",
                    "options": {
                        "a study guide": "Study Guide",
                        "flashcards": "Flashcards",
                        "a mind map outline": "Mind Map Outline",
                        "practice problems": "Practice Problems"
                    }
                },
                {
                    "name": "learningStyle",
                    "description": "Learning style to optimize for",
                    "type": "dropdown",
                    "required": True,
                    "default": "visual learner",
                    "options": {
                        "visual learner": "Visual",
                        "auditory learner": "Auditory",
                        "reading/writing learner": "Reading/Writing",
                        "kinesthetic learner": "Kinesthetic"
                    }
                },
                {
                    "name": "timeAvailable",
                    "description": "Study time available (minutes)",
                    "type": "number",
                    "required": False,
                    "default": 30
                },
                {
                    "name": "includeExamples",
                    "description": "Include practical examples",
                    "type": "boolean",
                    "required": False,
                    "default": True
                }
            ]
        },
        "executor": STUDY_BUDDY_EXECUTOR
    },
]

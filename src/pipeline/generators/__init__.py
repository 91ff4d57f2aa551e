"""
Study material generators for prepared lessons.

- Flashcards: one reversible card per vocabulary entry
- Quizzes: multiple choice and fill-in-the-blank questions
"""

from pipeline.generators.flashcard_generator import FlashcardGenerator
from pipeline.generators.quiz_generator import QuizGenerator

__all__ = ["FlashcardGenerator", "QuizGenerator"]

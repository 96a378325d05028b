from .video import Video, ProcessingLog, AudioSegment, WordSegment
from .vocabulary import WordEntry, Exercise, ExerciseQuestion, ExerciseOption, Pronunciation
# base and mixins are imported by the above as needed

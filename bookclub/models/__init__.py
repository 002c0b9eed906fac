from .book import Book, UserBook, BookRecommendation
from .club import Club, ClubMembership
from .club_book import ClubBook
from .suggestion import BookSuggestion, SuggestionVote
from .meeting import ClubMeeting, MeetingAttendee
from .achievement import Achievement, UserAchievement, AchievementProgress

__all__ = [
    "Book",
    "UserBook",
    "BookRecommendation",
    "Club",
    "ClubMembership",
    "ClubBook",
    "BookSuggestion",
    "SuggestionVote",
    "ClubMeeting",
    "MeetingAttendee",
    "Achievement",
    "UserAchievement",
    "AchievementProgress",
]

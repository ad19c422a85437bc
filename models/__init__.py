from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
from .User import User
from .Genre import Genre
from .Novel import Novel
from .Chapter import Chapter
from .Comment import Comment
from .Review import Review
from .Bookmark import Bookmark
from .ChapterPurchase import ChapterPurchase
from .Transaction import Transaction
from .CoinPackage import CoinPackage

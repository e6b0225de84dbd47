"""私募预售多票据购买编排器"""

__version__ = "0.1.0"

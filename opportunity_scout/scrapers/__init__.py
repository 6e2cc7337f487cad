from .base import BaseScraper
from .web3careers import Web3CareersScraper
from .github import GitHubIssuesScraper
from .cryptojobslist import CryptoJobsListScraper
from .cryptojobs import CryptoJobsScraper

__all__ = [
    "BaseScraper",
    "Web3CareersScraper",
    "GitHubIssuesScraper",
    "CryptoJobsListScraper",
    "CryptoJobsScraper",
]

"""Exceptions raised by the reconciliation pipeline"""


class AttendanceError(Exception):
    """Base class; str(error) is safe to show to the user"""

    default_message = "An unexpected error occurred while processing attendance. Please try again later."

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class SourceReadError(AttendanceError):
    default_message = "Could not read the spreadsheet. Please check the file format and upload it again."


class NoNamesFoundError(AttendanceError):
    default_message = "No names were found in the uploaded roster. Check the image quality or the file contents."


class EmptyObservedSetError(AttendanceError):
    default_message = ("No participant names were found in the uploaded Zoom screenshots. "
                       "Please make sure the images are clear.")


class MatchParseError(AttendanceError):
    default_message = "Failed to parse the name matching results. Please try again."


class ExtractionFailure(AttendanceError):
    default_message = "Could not extract names from the image."


class AnalysisInProgressError(AttendanceError):
    default_message = "An analysis is already running. Please wait for it to finish."


class AnalysisCancelledError(AttendanceError):
    default_message = "The analysis was cancelled."


class MissingInputError(AttendanceError):
    default_message = "Please upload the official roster (spreadsheet or image) and the Zoom screenshots first."


class CapabilityUnavailableError(AttendanceError):
    default_message = "Gemini API key not configured"

# SPDX-FileCopyrightText: 2020 Lukas Schrangl <lukas.schrangl@tuwien.ac.at>
#
# SPDX-License-Identifier: BSD-3-Clause

"""Collection of exception classes"""


class ChannelClosed(Exception):
    """All producers of a channel have finished and no item is left"""
    pass


class Interrupted(Exception):
    """A blocking channel operation was aborted

    Attributes
    ----------
    channel
        The channel that was waited on
    """
    def __init__(self, channel, text="Channel operation was aborted"):
        """Parameters
        ----------
        channel
            Set the :py:attr:`channel` attribute.
        text : str, optional
            What to display when converting the exception to a str
        """
        super().__init__(text)
        self.channel = channel

"""
Sequence model: a small LSTM regressor over lag windows and its training loop.

The network maps a (window, features_per_step) sequence to the next
difference-scale value. Each timestep's features are the previous response
value plus that timestep's covariates.
"""

import logging
from typing import Union

import numpy as np
import torch
import torch.nn as nn

logger = logging.getLogger(__name__)


def get_device(use_gpu: Union[bool, str] = False) -> torch.device:
    """
    Get the appropriate device for PyTorch models.

    Args:
        use_gpu: True/False or 'auto' to auto-detect

    Returns:
        torch.device for CPU or CUDA
    """
    if use_gpu == 'auto' or use_gpu is True:
        if torch.cuda.is_available():
            device = torch.device('cuda')
            logger.info(f"Using GPU: {torch.cuda.get_device_name(0)}")
        else:
            device = torch.device('cpu')
            logger.info("CUDA not available, using CPU")
    elif use_gpu is False or use_gpu == 'cpu':
        device = torch.device('cpu')
    else:
        device = torch.device(use_gpu)
    return device


class SequenceRegressor(nn.Module):
    """
    LSTM over a lag window followed by a linear head.

    Args:
        features_per_step: Number of features at each timestep
        hidden_size: LSTM hidden units
        num_layers: Stacked LSTM layers
        dropout: Dropout between stacked LSTM layers (ignored for 1 layer)
    """

    def __init__(self, features_per_step: int, hidden_size: int = 16,
                 num_layers: int = 1, dropout: float = 0.0):
        super(SequenceRegressor, self).__init__()
        self.lstm = nn.LSTM(features_per_step, hidden_size, num_layers=num_layers,
                            batch_first=True, dropout=dropout if num_layers > 1 else 0.0)
        self.head = nn.Linear(hidden_size, 1)

    def forward(self, x):
        out, _ = self.lstm(x)
        return self.head(out[:, -1, :]).squeeze(-1)

    def predict(self, X, verbose=0):
        """
        Sklearn-style predict.

        Args:
            X: numpy array (N, window, features_per_step)
            verbose: Ignored, for API compatibility

        Returns:
            Predictions as numpy array (N,)
        """
        self.eval()
        device = next(self.parameters()).device
        with torch.no_grad():
            if isinstance(X, np.ndarray):
                X_t = torch.FloatTensor(X).to(device)
            else:
                X_t = X.to(device)
            return self.forward(X_t).cpu().numpy()


def train_sequence_model(model: nn.Module, X_train: np.ndarray, y_train: np.ndarray,
                         epochs: int = 100, batch_size: int = 32, lr: float = 0.01,
                         seed: int = 42, verbose: bool = False,
                         device: torch.device = None):
    """
    Train a SequenceRegressor with Adam + MSE.

    Shuffling uses a generator seeded from ``seed`` so two trainings on the
    same data produce the same weights.

    Args:
        model: PyTorch model
        X_train: (N, window, features_per_step)
        y_train: (N,)
        epochs: Number of epochs
        batch_size: Batch size
        lr: Learning rate
        seed: Shuffle seed
        verbose: Log loss every epoch
        device: Explicit torch.device (default: CPU)

    Returns:
        (model, history) where history = {'train_loss': [...]}
    """
    if device is None:
        device = get_device(False)
    model = model.to(device)

    X_train_t = torch.FloatTensor(X_train).to(device)
    y_train_t = torch.FloatTensor(y_train).to(device)

    optimizer = torch.optim.Adam(model.parameters(), lr=lr)
    mse_loss = nn.MSELoss()
    history = {'train_loss': []}

    generator = torch.Generator()
    generator.manual_seed(seed)
    dataset = torch.utils.data.TensorDataset(X_train_t, y_train_t)
    dataloader = torch.utils.data.DataLoader(dataset, batch_size=batch_size, shuffle=True,
                                             generator=generator)

    for epoch in range(epochs):
        model.train()
        train_loss = 0.0

        for X_batch, y_batch in dataloader:
            optimizer.zero_grad()
            loss = mse_loss(model(X_batch), y_batch)
            loss.backward()
            optimizer.step()
            train_loss += loss.item()

        train_loss /= len(dataloader)
        history['train_loss'].append(train_loss)

        if verbose:
            logger.info(f"Epoch [{epoch+1}/{epochs}], Train Loss: {train_loss:.6f}")

    if history['train_loss']:
        logger.debug(f"Sequence model trained: {epochs} epochs, final loss {history['train_loss'][-1]:.6f}")
    return model, history
